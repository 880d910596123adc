"""QA collaborator: records the item video and releases sections for client approval."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import InvalidStateError, NotFoundError
from stitchflow.models.order import Order, OrderItem, OrderItemStatus, OrderStatus, SectionStatus
from stitchflow.services.state_machine import refresh_order_item_status, transition_order, transition_section
from stitchflow.services.timeline_service import TimelineService


logger = logging.getLogger(__name__)


QA_READY_STATUSES = (
    SectionStatus.PRODUCTION_COMPLETED.value,
    SectionStatus.DYEING_COMPLETED.value,
    SectionStatus.QA_PENDING.value,
    SectionStatus.READY_FOR_CLIENT_APPROVAL.value,
    SectionStatus.AWAITING_CLIENT_APPROVAL.value,  # Re-video
)

CLIENT_READY_ITEM_STATUSES = (
    OrderItemStatus.READY_FOR_CLIENT_APPROVAL.value,
    OrderItemStatus.AWAITING_CLIENT_APPROVAL.value,
)


class QAService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.timeline = TimelineService(db)

    async def record_video(
        self,
        order_item_id: uuid.UUID,
        video_data: dict,
        qa_data: Optional[dict] = None,
        recorded_by: Optional[str] = None,
    ) -> OrderItem:
        """
        Store the QA video for an order item.

        Every section must have finished production (and dyeing, where it was
        sent). Sections move on to READY_FOR_CLIENT_APPROVAL; once every item
        of the order has a video the order is ready to be sent to the client.
        """
        order_item = await self.db.get(OrderItem, order_item_id)
        if not order_item:
            raise NotFoundError(f"Order item {order_item_id} not found")
        not_ready = {s.section_key: s.status for s in order_item.sections if s.status not in QA_READY_STATUSES}
        if not_ready:
            raise InvalidStateError(
                "All sections must finish production before QA",
                details={"sections": not_ready},
            )

        now = datetime.now(timezone.utc)
        for section in order_item.sections:
            if section.status in (SectionStatus.PRODUCTION_COMPLETED.value, SectionStatus.DYEING_COMPLETED.value):
                transition_section(order_item, section, SectionStatus.QA_PENDING)
            if section.status == SectionStatus.QA_PENDING.value:
                transition_section(order_item, section, SectionStatus.READY_FOR_CLIENT_APPROVAL)
            section.qa_status = "APPROVED"
            if qa_data is not None:
                section.qa_data = {**qa_data, "recorded_at": now.isoformat()}

        order_item.video_data = {**video_data, "recorded_by": recorded_by, "recorded_at": now.isoformat()}
        order_item.re_video_request = None
        status = refresh_order_item_status(order_item)

        order = await self.db.get(Order, order_item.order_id)
        if order.status in (OrderStatus.IN_PROGRESS.value, OrderStatus.INVENTORY_CHECK.value):
            if all(i.video_data and i.status in CLIENT_READY_ITEM_STATUSES for i in order.items):
                transition_order(order, OrderStatus.READY_FOR_CLIENT_APPROVAL)

        await self.timeline.log(
            order_item.order_id, "QA_VIDEO_RECORDED", "QA video recorded",
            order_item_id=order_item.id, performed_by=recorded_by,
            details={"sections": [s.section_key for s in order_item.sections]},
        )
        logger.info("QA video recorded for item %s -> %s (order %s)", order_item.id, status, order.status)
        return order_item
