"""Production endpoints: assign an item's ready sections and run their tasks."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from stitchflow.api.deps import DB
from stitchflow.schemas.workflow import ProductionAssignRequest, ProductionTaskResponse, TaskActionRequest
from stitchflow.services.production_service import ProductionService


router = APIRouter()


@router.get("/tasks", response_model=List[ProductionTaskResponse])
async def list_tasks(
    db: DB,
    order_item_id: Optional[uuid.UUID] = Query(None),
    status: Optional[str] = Query(None),
):
    return await ProductionService(db).list_tasks(order_item_id=order_item_id, status=status)


@router.post(
    "/order-items/{order_item_id}/assign",
    response_model=List[ProductionTaskResponse],
    status_code=status.HTTP_201_CREATED,
)
async def assign_production(order_item_id: uuid.UUID, data: ProductionAssignRequest, db: DB):
    """One task per section that is READY_FOR_PRODUCTION."""
    service = ProductionService(db)
    return await service.assign_production(order_item_id, data.assigned_to, assigned_by=data.assigned_by)


@router.post("/tasks/{task_id}/start", response_model=ProductionTaskResponse)
async def start_task(task_id: uuid.UUID, db: DB, data: TaskActionRequest = TaskActionRequest()):
    return await ProductionService(db).start_task(task_id, worker=data.worker)


@router.post("/tasks/{task_id}/complete", response_model=ProductionTaskResponse)
async def complete_task(task_id: uuid.UUID, db: DB, data: TaskActionRequest = TaskActionRequest()):
    return await ProductionService(db).complete_task(task_id, notes=data.notes)
