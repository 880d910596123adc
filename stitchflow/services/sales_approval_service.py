"""
Client approval gate and order rollbacks.

Order level flow:
    READY_FOR_CLIENT_APPROVAL -> AWAITING_CLIENT_APPROVAL (video sent)
    AWAITING_CLIENT_APPROVAL  -> AWAITING_ACCOUNT_APPROVAL (client approved)
                              -> IN_PROGRESS (alteration requested)
                              -> INVENTORY_CHECK (start from scratch)
                              -> CANCELLED_BY_CLIENT (client rejected)
    AWAITING_ACCOUNT_APPROVAL -> READY_FOR_DISPATCH (payments approved)
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.config import settings
from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.core.section_keys import derive_section_keys, normalize_section_key
from stitchflow.models.order import (
    Order,
    OrderItem,
    OrderItemSection,
    OrderItemStatus,
    OrderStatus,
    SectionStatus,
)
from stitchflow.schemas.sales import AlterationSection, ReVideoSection
from stitchflow.services.packet_service import PacketService
from stitchflow.services.procurement_service import ProcurementService
from stitchflow.services.production_service import ProductionService
from stitchflow.services.section_inventory_service import SectionInventoryService
from stitchflow.services.state_machine import (
    refresh_order_item_status,
    require_order_status,
    transition_order,
    transition_order_item,
    transition_section,
)
from stitchflow.services.timeline_service import TimelineService


logger = logging.getLogger(__name__)


def reset_section(section: OrderItemSection) -> None:
    """Clear every derived field of a section; only archived QA data survives."""
    archive = list(section.archived_qa_data or [])
    if section.qa_data:
        archive.append(section.qa_data)
    section.status = SectionStatus.PENDING_INVENTORY_CHECK.value
    section.status_updated_at = datetime.now(timezone.utc)
    section.inventory_check_result = None
    section.packet_pick_list = None
    section.production_task_id = None
    section.qa_status = None
    section.qa_data = None
    section.archived_qa_data = archive or None
    section.is_alteration = False
    section.alteration_notes = None
    section.alteration_requested_by = None
    section.alteration_requested_at = None
    section.dyeing_round = 1
    section.dyeing_rejection_reason = None
    section.dyeing_rejected_at = None
    section.sent_to_client_at = None
    section.client_approved_at = None


class SalesApprovalService:
    """Service for the client approval gate."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.packets = PacketService(db)
        self.procurement = ProcurementService(db)
        self.production = ProductionService(db)
        self.section_inventory = SectionInventoryService(db)
        self.timeline = TimelineService(db)

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def _order_item(order: Order, order_item_id: uuid.UUID) -> OrderItem:
        for item in order.items:
            if item.id == order_item_id:
                return item
        raise NotFoundError(f"Order item {order_item_id} not found on order {order.order_number}")

    @staticmethod
    def _section(order_item: OrderItem, name: str) -> OrderItemSection:
        section = order_item.get_section(normalize_section_key(name))
        if section is None:
            raise NotFoundError(
                f"Section '{name}' not found on order item {order_item.id}",
                details={"available": [s.section_key for s in order_item.sections]},
            )
        return section

    # ==================== SEND / APPROVE ====================

    async def send_to_client(self, order_id: uuid.UUID, sent_by: Optional[str] = None) -> Order:
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.READY_FOR_CLIENT_APPROVAL)

        now = datetime.now(timezone.utc)
        for item in order.items:
            for section in item.sections:
                if section.status == SectionStatus.READY_FOR_CLIENT_APPROVAL.value:
                    transition_section(item, section, SectionStatus.AWAITING_CLIENT_APPROVAL)
                    section.sent_to_client_at = now
            refresh_order_item_status(item)
        transition_order(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        order.sent_to_client_at = now

        await self.timeline.log(order.id, "SENT_TO_CLIENT", "Videos sent to client for approval", performed_by=sent_by)
        logger.info("Order %s sent to client", order.order_number)
        return order

    async def client_approved(
        self,
        order_id: uuid.UUID,
        screenshots: List[str],
        notes: Optional[str] = None,
        approved_by: Optional[str] = None,
    ) -> Order:
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        limit = settings.MAX_APPROVAL_SCREENSHOTS
        if not screenshots or len(screenshots) > limit:
            raise InvalidStateError(
                f"Client approval needs between 1 and {limit} screenshots (got {len(screenshots or [])})",
                details={"screenshots": len(screenshots or []), "max": limit},
            )
        pending = {
            f"{item.id}:{s.section_key}": s.status
            for item in order.items for s in item.sections
            if s.status not in (SectionStatus.AWAITING_CLIENT_APPROVAL.value, SectionStatus.CLIENT_APPROVED.value)
        }
        if pending:
            raise InvalidStateError("Some sections were not sent to the client", details={"sections": pending})

        now = datetime.now(timezone.utc)
        for item in order.items:
            for section in item.sections:
                if transition_section(item, section, SectionStatus.CLIENT_APPROVED):
                    section.client_approved_at = now
            refresh_order_item_status(item)
        transition_order(order, OrderStatus.AWAITING_ACCOUNT_APPROVAL)
        order.client_approval_data = {
            "screenshots": list(screenshots),
            "notes": notes,
            "approved_by": approved_by,
            "approved_at": now.isoformat(),
        }

        await self.timeline.log(
            order.id, "CLIENT_APPROVED", "Client approved the order",
            performed_by=approved_by, details={"screenshots": len(screenshots)},
        )
        logger.info("Order %s approved by client", order.order_number)
        return order

    # ==================== CLIENT FEEDBACK ====================

    async def request_re_video(
        self,
        order_id: uuid.UUID,
        order_item_id: uuid.UUID,
        sections: List[ReVideoSection],
        requested_by: Optional[str] = None,
    ) -> OrderItem:
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        order_item = self._order_item(order, order_item_id)
        requested = [
            {"name": self._section(order_item, s.name).section_key, "notes": s.notes}
            for s in sections
        ]

        order_item.re_video_request = {
            "sections": requested,
            "requested_by": requested_by,
            "requested_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.timeline.log(
            order.id, "RE_VIDEO_REQUESTED", "Client asked for a new video",
            order_item_id=order_item.id, performed_by=requested_by, details={"sections": requested},
        )
        return order_item

    async def request_alteration(
        self,
        order_id: uuid.UUID,
        sections: List[AlterationSection],
        requested_by: Optional[str] = None,
    ) -> Order:
        """
        Send individual sections back to production.

        Every referenced item and section is resolved before anything changes.
        Inventory and procurement state are left alone.
        """
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        targets = []
        for entry in sections:
            item = self._order_item(order, entry.order_item_id)
            targets.append((item, self._section(item, entry.section_name), entry.notes))

        now = datetime.now(timezone.utc)
        affected: Dict[uuid.UUID, OrderItem] = {}
        for item, section, notes in targets:
            transition_section(item, section, SectionStatus.READY_FOR_PRODUCTION, force=True)
            section.is_alteration = True
            section.alteration_notes = notes
            section.alteration_requested_by = requested_by
            section.alteration_requested_at = now
            affected[item.id] = item

        for item in affected.values():
            transition_order_item(item, OrderItemStatus.ALTERATION_REQUIRED)
            item.video_data = None
            item.re_video_request = None
            await self.timeline.log(
                order.id, "ALTERATION_REQUESTED", "Sections sent back for alteration",
                order_item_id=item.id, performed_by=requested_by,
                details={"sections": [s.section_key for i, s, _ in targets if i.id == item.id]},
            )
        transition_order(order, OrderStatus.IN_PROGRESS)

        logger.info("Alteration requested on order %s for %d sections", order.order_number, len(targets))
        return order

    async def client_rejected(
        self,
        order_id: uuid.UUID,
        reason: str,
        cancelled_by: Optional[str] = None,
    ) -> Order:
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")

        for item in order.items:
            transition_order_item(item, OrderItemStatus.CANCELLED_BY_CLIENT)
        transition_order(order, OrderStatus.CANCELLED_BY_CLIENT)
        order.cancellation_data = {
            "reason": reason,
            "cancelled_by": cancelled_by,
            "cancelled_at": datetime.now(timezone.utc).isoformat(),
        }

        await self.timeline.log(order.id, "CLIENT_REJECTED", reason, performed_by=cancelled_by)
        logger.info("Order %s cancelled by client", order.order_number)
        return order

    # ==================== START FROM SCRATCH ====================

    async def start_from_scratch(
        self,
        order_id: uuid.UUID,
        confirmed: bool,
        reason: str,
        confirmed_by: Optional[str] = None,
    ) -> Order:
        """Roll every item of the order back to its first inventory check."""
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        if not confirmed:
            raise ValidationError("Start from scratch must be confirmed")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to start from scratch")

        summary = await self._rollback_order_items(order, reason, confirmed_by)

        transition_order(order, OrderStatus.INVENTORY_CHECK)
        order.sent_to_client_at = None
        order.client_approval_data = None

        await self.timeline.log(
            order.id, "START_FROM_SCRATCH", reason, performed_by=confirmed_by, details=summary,
        )
        logger.info("Order %s restarted from scratch: %s", order.order_number, summary)
        return order

    async def _rollback_order_items(self, order: Order, reason: str, performed_by: Optional[str]) -> dict:
        """
        Undo all downstream work for the order's items in one place.

        Demands, production tasks and assignments are deleted by item id; each
        item loses its packet and derived fields and its sections are rebuilt.
        """
        item_ids = [item.id for item in order.items]
        demands_deleted = await self.procurement.delete_for_order_items(item_ids)
        tasks_deleted = await self.production.delete_for_order_items(item_ids)

        for item in order.items:
            consumed = [d for d in item.stock_deductions or [] if not d.get("released")]
            released = []
            if consumed and settings.RESET_RESTOCKS_CONSUMED_MATERIALS:
                released = await self.section_inventory.release_section_stock(
                    item, sorted({d["section"] for d in consumed}),
                    reason=f"Start from scratch: {reason}", performed_by=performed_by,
                )

            if item.video_data:
                item.archived_video_data = list(item.archived_video_data or []) + [
                    {**item.video_data, "archived_at": datetime.now(timezone.utc).isoformat()}
                ]
            item.video_data = None
            item.re_video_request = None
            await self.packets.delete_for_item(item)
            await self._rebuild_sections(item)

            item.material_requirements = None
            item.stock_deductions = []
            item.last_inventory_check = None
            item.sections_inventory_checked = None
            transition_order_item(item, OrderItemStatus.INVENTORY_CHECK)

            await self.timeline.log(
                order.id, "START_FROM_SCRATCH", reason,
                order_item_id=item.id, performed_by=performed_by,
                details={
                    "sections": [s.section_key for s in item.sections],
                    "consumed_deductions": [] if released else consumed,
                    "restocked_deductions": released,
                },
            )

        return {
            "order_items": [str(i) for i in item_ids],
            "demands_deleted": demands_deleted,
            "production_tasks_deleted": tasks_deleted,
        }

    async def _rebuild_sections(self, item: OrderItem) -> None:
        """One clean PENDING_INVENTORY_CHECK row per derived key; stale rows are dropped."""
        derived = derive_section_keys(item.included_items, item.selected_add_ons)

        keep: Dict[str, OrderItemSection] = {}
        for section in sorted(item.sections, key=lambda s: s.section_key != normalize_section_key(s.section_key)):
            key = normalize_section_key(section.section_key)
            if key in derived and key not in keep:
                keep[key] = section
        for section in [s for s in item.sections if s not in keep.values()]:
            item.sections.remove(section)
        await self.db.flush()

        for position, (key, display_name) in enumerate(derived.items()):
            section = keep.get(key)
            if section is None:
                section = OrderItemSection(section_key=key, display_name=display_name)
                item.sections.append(section)
            section.section_key = key
            section.display_name = display_name
            section.position = position
            reset_section(section)
        await self.db.flush()

    # ==================== ACCOUNTS ====================

    async def approve_payments(self, order_id: uuid.UUID, approved_by: Optional[str] = None) -> Order:
        order = await self._get_order(order_id)
        require_order_status(order, OrderStatus.AWAITING_ACCOUNT_APPROVAL)
        received = order.total_received
        if received < order.total_amount:
            remaining = order.total_amount - received
            raise InvalidStateError(
                f"Payments incomplete: {remaining} remaining",
                details={
                    "total_amount": str(order.total_amount),
                    "total_received": str(received),
                    "remaining_amount": str(remaining),
                },
            )

        for item in order.items:
            if item.status == OrderItemStatus.CLIENT_APPROVED.value:
                transition_order_item(item, OrderItemStatus.READY_FOR_DISPATCH)
        transition_order(order, OrderStatus.READY_FOR_DISPATCH)

        await self.timeline.log(
            order.id, "PAYMENTS_APPROVED", "Payments approved, order ready for dispatch",
            performed_by=approved_by, details={"total_received": str(received)},
        )
        logger.info("Payments approved for order %s", order.order_number)
        return order
