from typing import Optional, Dict, Any, List
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.models.timeline import TimelineEntry


class TimelineService:
    """
    Timeline service for recording workflow actions on orders and order items.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        order_id: uuid.UUID,
        action: str,
        description: Optional[str] = None,
        order_item_id: Optional[uuid.UUID] = None,
        performed_by: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> TimelineEntry:
        """
        Create a timeline entry.

        Args:
            order_id: Order the action belongs to
            action: The action performed (INVENTORY_CHECK, START_FROM_SCRATCH, etc.)
            description: Human-readable description
            order_item_id: Order item affected, if the action is item scoped
            performed_by: Actor name
            details: Structured payload (sections, quantities, reasons)

        Returns:
            The created TimelineEntry
        """
        entry = TimelineEntry(
            order_id=order_id,
            order_item_id=order_item_id,
            action=action,
            description=description,
            performed_by=performed_by,
            details=details,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_order_timeline(self, order_id: uuid.UUID) -> List[TimelineEntry]:
        result = await self.db.execute(
            select(TimelineEntry)
            .where(TimelineEntry.order_id == order_id)
            .order_by(TimelineEntry.created_at)
        )
        return list(result.scalars().all())

    async def get_item_timeline(self, order_item_id: uuid.UUID) -> List[TimelineEntry]:
        result = await self.db.execute(
            select(TimelineEntry)
            .where(TimelineEntry.order_item_id == order_item_id)
            .order_by(TimelineEntry.created_at)
        )
        return list(result.scalars().all())
