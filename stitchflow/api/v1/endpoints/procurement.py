"""Procurement demand endpoints. Demands are raised by the inventory check, never by hand."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from stitchflow.api.deps import DB
from stitchflow.models.procurement import DemandStatus
from stitchflow.schemas.procurement import DemandResponse, DemandStats, DemandUpdate
from stitchflow.services.procurement_service import ProcurementService


router = APIRouter()


@router.get("", response_model=List[DemandResponse])
async def list_demands(
    db: DB,
    status: Optional[DemandStatus] = Query(None),
    order_id: Optional[uuid.UUID] = Query(None),
    order_item_id: Optional[uuid.UUID] = Query(None),
    section: Optional[str] = Query(None),
):
    service = ProcurementService(db)
    return await service.list_demands(
        status=status.value if status else None,
        order_id=order_id,
        order_item_id=order_item_id,
        section=section,
    )


@router.get("/stats", response_model=DemandStats)
async def get_demand_stats(db: DB):
    """Count demands per status."""
    return await ProcurementService(db).stats()


@router.get("/{demand_id}", response_model=DemandResponse)
async def get_demand(demand_id: uuid.UUID, db: DB):
    return await ProcurementService(db).get_demand(demand_id)


@router.patch("/{demand_id}", response_model=DemandResponse)
async def update_demand(demand_id: uuid.UUID, data: DemandUpdate, db: DB):
    """
    Move a demand through OPEN -> ORDERED -> RECEIVED -> FULFILLED.

    A section only becomes eligible for the rerun once none of its demands
    are OPEN or ORDERED.
    """
    service = ProcurementService(db)
    return await service.update_demand(
        demand_id,
        status=data.status.value if data.status else None,
        notes=data.notes,
    )


@router.delete("/{demand_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_demand(demand_id: uuid.UUID, db: DB):
    await ProcurementService(db).delete_demand(demand_id)
