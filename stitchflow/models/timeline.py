import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from stitchflow.database import Base
from stitchflow.db_types import JSONType, UUIDType


class TimelineEntry(Base):
    """
    Append-only audit trail of workflow actions on an order and its items.
    Survives resets: nothing in the workflow deletes timeline rows.
    """
    __tablename__ = "timeline_entries"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)

    # Actions: INVENTORY_CHECK, SECTION_RERUN, PACKET_*, ALTERATION_REQUESTED,
    #          START_FROM_SCRATCH, SENT_TO_CLIENT, CLIENT_APPROVED, etc.
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    performed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<TimelineEntry(action='{self.action}', order='{self.order_id}')>"
