"""Procurement demand tracker: shortages that block individual sections."""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import NotFoundError
from stitchflow.models.order import OrderItem
from stitchflow.models.procurement import (
    ProcurementDemand,
    DemandStatus,
    BLOCKING_DEMAND_STATUSES,
    ACTIVE_DEMAND_STATUSES,
)
from stitchflow.services.state_machine import DEMAND_TRANSITIONS, validate_simple_transition


logger = logging.getLogger(__name__)


class ProcurementService:
    """Service for procurement demand operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== QUERIES ====================

    async def get_demand(self, demand_id: uuid.UUID) -> ProcurementDemand:
        demand = await self.db.get(ProcurementDemand, demand_id)
        if not demand:
            raise NotFoundError(f"Procurement demand {demand_id} not found")
        return demand

    async def list_demands(
        self,
        status: Optional[str] = None,
        order_id: Optional[uuid.UUID] = None,
        order_item_id: Optional[uuid.UUID] = None,
        section: Optional[str] = None,
    ) -> List[ProcurementDemand]:
        query = select(ProcurementDemand).order_by(ProcurementDemand.created_at.desc())
        if status:
            query = query.where(ProcurementDemand.status == status)
        if order_id:
            query = query.where(ProcurementDemand.order_id == order_id)
        if order_item_id:
            query = query.where(ProcurementDemand.order_item_id == order_item_id)
        if section:
            query = query.where(ProcurementDemand.affected_section == section)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats(self) -> Dict[str, int]:
        """Count demands per status."""
        result = await self.db.execute(
            select(ProcurementDemand.status, func.count(ProcurementDemand.id))
            .group_by(ProcurementDemand.status)
        )
        counts = {status.value.lower(): 0 for status in DemandStatus}
        for status, count in result.all():
            counts[status.lower()] = count
        counts["total"] = sum(counts.values())
        return counts

    async def blocking_demands_by_section(self, order_item_id: uuid.UUID) -> Dict[str, List[ProcurementDemand]]:
        """Group the item's OPEN and ORDERED demands by affected section."""
        result = await self.db.execute(
            select(ProcurementDemand).where(
                ProcurementDemand.order_item_id == order_item_id,
                ProcurementDemand.status.in_(BLOCKING_DEMAND_STATUSES),
            )
        )
        grouped: Dict[str, List[ProcurementDemand]] = defaultdict(list)
        for demand in result.scalars().all():
            grouped[demand.affected_section].append(demand)
        return dict(grouped)

    async def active_demands_for_section(self, order_item_id: uuid.UUID, section: str) -> List[ProcurementDemand]:
        result = await self.db.execute(
            select(ProcurementDemand).where(
                ProcurementDemand.order_item_id == order_item_id,
                ProcurementDemand.affected_section == section,
                ProcurementDemand.status.in_(ACTIVE_DEMAND_STATUSES),
            )
        )
        return list(result.scalars().all())

    # ==================== WORKFLOW WRITES ====================

    async def create_demand(
        self,
        order_item: OrderItem,
        section: str,
        requirement: dict,
    ) -> ProcurementDemand:
        demand = ProcurementDemand(
            demand_number=await self._generate_demand_number(),
            order_id=order_item.order_id,
            order_item_id=order_item.id,
            inventory_item_id=requirement["inventory_item_id"],
            inventory_item_name=requirement.get("inventory_item_name"),
            inventory_item_sku=requirement.get("inventory_item_sku"),
            required_qty=requirement["required_qty"],
            available_qty=requirement["available_qty"],
            shortage_qty=requirement["shortage_qty"],
            unit=requirement.get("unit") or "Unit",
            affected_section=section,
            status=DemandStatus.OPEN.value,
            notes=f"Auto-created: {section} short of {requirement.get('inventory_item_name') or 'material'}",
        )
        self.db.add(demand)
        await self.db.flush()
        return demand

    async def refresh_section_shortages(
        self,
        order_item: OrderItem,
        section: str,
        shortages: Iterable[dict],
    ) -> List[ProcurementDemand]:
        """
        Update a failed section's demands in place after a rerun.

        A non-terminal demand for the same material is refreshed with the new
        figures and reopened; materials with no demand get a new OPEN one.
        """
        existing = {d.inventory_item_id: d for d in await self.active_demands_for_section(order_item.id, section)}
        touched: List[ProcurementDemand] = []
        for shortage in shortages:
            demand = existing.get(shortage["inventory_item_id"])
            if demand is None:
                touched.append(await self.create_demand(order_item, section, shortage))
                continue
            demand.required_qty = shortage["required_qty"]
            demand.available_qty = shortage["available_qty"]
            demand.shortage_qty = shortage["shortage_qty"]
            demand.status = DemandStatus.OPEN.value
            demand.fulfilled_at = None
            touched.append(demand)
        await self.db.flush()
        return touched

    async def fulfill_section(self, order_item_id: uuid.UUID, section: str) -> int:
        """Close out every non-terminal demand of a section that passed its recheck."""
        now = datetime.now(timezone.utc)
        demands = await self.active_demands_for_section(order_item_id, section)
        for demand in demands:
            demand.status = DemandStatus.FULFILLED.value
            demand.fulfilled_at = now
        await self.db.flush()
        return len(demands)

    async def delete_for_order_items(self, order_item_ids: Iterable[uuid.UUID]) -> int:
        ids = list(order_item_ids)
        if not ids:
            return 0
        result = await self.db.execute(
            delete(ProcurementDemand)
            .where(ProcurementDemand.order_item_id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    # ==================== MANUAL MANAGEMENT ====================

    async def update_demand(
        self,
        demand_id: uuid.UUID,
        status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProcurementDemand:
        demand = await self.get_demand(demand_id)
        if status:
            new_status = validate_simple_transition(
                DEMAND_TRANSITIONS, "Demand", demand.demand_number, demand.status, status,
            )
            if new_status == DemandStatus.FULFILLED.value and demand.status != new_status:
                demand.fulfilled_at = datetime.now(timezone.utc)
            demand.status = new_status
            logger.info("Demand %s -> %s", demand.demand_number, new_status)
        if notes is not None:
            demand.notes = notes
        await self.db.flush()
        return demand

    async def delete_demand(self, demand_id: uuid.UUID) -> None:
        demand = await self.get_demand(demand_id)
        await self.db.delete(demand)
        await self.db.flush()

    async def _generate_demand_number(self) -> str:
        """Generate unique demand number: PD-YYYYMMDD-XXXX"""
        date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
        prefix = f"PD-{date_part}-"
        # Demands are deleted on re-derivation, so continue from the highest
        # number issued today rather than from a row count.
        last = await self.db.scalar(
            select(func.max(ProcurementDemand.demand_number)).where(ProcurementDemand.demand_number.like(f"{prefix}%"))
        )
        sequence = int(last.rsplit("-", 1)[1]) if last else 0
        return f"{prefix}{sequence + 1:04d}"
