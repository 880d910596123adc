"""
Dyeing collaborator.

Sections move READY_FOR_DYEING -> DYEING_ACCEPTED -> DYEING_IN_PROGRESS ->
DYEING_COMPLETED. A rejection sends the section back to the material check:
its stock is returned, it leaves the packet and the next rerun picks it up.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.core.section_keys import normalize_section_key
from stitchflow.models.order import OrderItem, OrderItemSection, SectionStatus
from stitchflow.services.packet_service import PacketService
from stitchflow.services.section_inventory_service import SectionInventoryService
from stitchflow.services.state_machine import refresh_order_item_status, transition_section
from stitchflow.services.timeline_service import TimelineService


logger = logging.getLogger(__name__)


REJECTABLE_STATUSES = (
    SectionStatus.READY_FOR_DYEING.value,
    SectionStatus.DYEING_ACCEPTED.value,
    SectionStatus.DYEING_IN_PROGRESS.value,
)


class DyeingService:
    """Service for the dyeing stage of individual sections."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.packets = PacketService(db)
        self.section_inventory = SectionInventoryService(db)
        self.timeline = TimelineService(db)

    async def _get_order_item(self, order_item_id: uuid.UUID) -> OrderItem:
        order_item = await self.db.get(OrderItem, order_item_id)
        if not order_item:
            raise NotFoundError(f"Order item {order_item_id} not found")
        return order_item

    def _select_sections(
        self,
        order_item: OrderItem,
        sections: Optional[List[str]],
        allowed_statuses,
        action: str,
    ) -> List[OrderItemSection]:
        """Resolve section names; with no names, every section in an allowed status."""
        if not sections:
            selected = [s for s in order_item.sections if s.status in allowed_statuses]
            if not selected:
                raise InvalidStateError(
                    f"No sections can be {action}",
                    details={"sections": {s.section_key: s.status for s in order_item.sections}},
                )
            return selected

        selected = []
        for name in sections:
            section = order_item.get_section(normalize_section_key(name))
            if section is None:
                raise NotFoundError(f"Section '{name}' not found on order item {order_item.id}")
            if section.status not in allowed_statuses:
                raise InvalidStateError(
                    f"Section '{section.section_key}' cannot be {action} from {section.status}",
                    details={"section": section.section_key, "current_status": section.status},
                )
            selected.append(section)
        return selected

    async def _advance(
        self,
        order_item_id: uuid.UUID,
        sections: Optional[List[str]],
        from_status: SectionStatus,
        to_status: SectionStatus,
        action: str,
        performed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderItem:
        order_item = await self._get_order_item(order_item_id)
        selected = self._select_sections(order_item, sections, (from_status.value,), action)
        for section in selected:
            transition_section(order_item, section, to_status)
        refresh_order_item_status(order_item)

        await self.timeline.log(
            order_item.order_id, f"DYEING_{action.upper()}",
            f"Sections {action}: {', '.join(s.section_key for s in selected)}",
            order_item_id=order_item.id, performed_by=performed_by,
            details={"sections": [s.section_key for s in selected], "notes": notes},
        )
        return order_item

    async def send_to_dyeing(self, order_item_id: uuid.UUID, sections: Optional[List[str]] = None,
                             performed_by: Optional[str] = None, notes: Optional[str] = None) -> OrderItem:
        return await self._advance(
            order_item_id, sections, SectionStatus.PRODUCTION_COMPLETED, SectionStatus.READY_FOR_DYEING,
            "sent", performed_by, notes,
        )

    async def accept(self, order_item_id: uuid.UUID, sections: Optional[List[str]] = None,
                     performed_by: Optional[str] = None, notes: Optional[str] = None) -> OrderItem:
        return await self._advance(
            order_item_id, sections, SectionStatus.READY_FOR_DYEING, SectionStatus.DYEING_ACCEPTED,
            "accepted", performed_by, notes,
        )

    async def start(self, order_item_id: uuid.UUID, sections: Optional[List[str]] = None,
                    performed_by: Optional[str] = None, notes: Optional[str] = None) -> OrderItem:
        return await self._advance(
            order_item_id, sections, SectionStatus.DYEING_ACCEPTED, SectionStatus.DYEING_IN_PROGRESS,
            "started", performed_by, notes,
        )

    async def complete(self, order_item_id: uuid.UUID, sections: Optional[List[str]] = None,
                       performed_by: Optional[str] = None, notes: Optional[str] = None) -> OrderItem:
        return await self._advance(
            order_item_id, sections, SectionStatus.DYEING_IN_PROGRESS, SectionStatus.DYEING_COMPLETED,
            "completed", performed_by, notes,
        )

    async def reject(
        self,
        order_item_id: uuid.UUID,
        sections: List[str],
        reason: str,
        notes: Optional[str] = None,
        rejected_by: Optional[str] = None,
    ) -> OrderItem:
        """
        Reject sections at dyeing.

        Each section returns to PENDING_INVENTORY_CHECK with its dyeing round
        bumped; its deducted stock is released and it is removed from the packet.
        """
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        order_item = await self._get_order_item(order_item_id)
        selected = self._select_sections(order_item, sections, REJECTABLE_STATUSES, "rejected")

        now = datetime.now(timezone.utc)
        keys = [s.section_key for s in selected]
        for section in selected:
            transition_section(order_item, section, SectionStatus.PENDING_INVENTORY_CHECK)
            section.inventory_check_result = None
            section.production_task_id = None
            section.dyeing_round = (section.dyeing_round or 1) + 1
            section.dyeing_rejection_reason = reason
            section.dyeing_rejected_at = now

        released = await self.section_inventory.release_section_stock(
            order_item, keys, reason=f"Dyeing rejected: {reason}", performed_by=rejected_by,
        )
        await self.packets.remove_sections(order_item, keys, reason=f"Dyeing rejected: {reason}")
        status = refresh_order_item_status(order_item)

        await self.timeline.log(
            order_item.order_id, "DYEING_REJECTED",
            f"Dyeing rejected for {', '.join(keys)}: {reason}",
            order_item_id=order_item.id, performed_by=rejected_by,
            details={
                "sections": keys,
                "reason": reason,
                "notes": notes,
                "released_items": len(released),
                "rounds": {s.section_key: s.dyeing_round for s in selected},
            },
        )
        logger.info("Dyeing rejected for item %s sections %s -> %s", order_item.id, keys, status)
        return order_item
