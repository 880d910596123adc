"""Material packet (pick list) models."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stitchflow.core.enum_utils import enum_comment
from stitchflow.database import Base
from stitchflow.db_types import JSONType, UUIDType, QuantityType


class PacketStatus(str, Enum):
    """Packet status enumeration."""
    PENDING = "PENDING"           # Created, waiting for a picker
    ASSIGNED = "ASSIGNED"         # Assigned to picker
    IN_PROGRESS = "IN_PROGRESS"   # Picking in progress
    COMPLETED = "COMPLETED"       # All items picked, awaiting verification
    APPROVED = "APPROVED"         # Verified, sections released to production
    INVALIDATED = "INVALIDATED"   # Every included section was sent back


class Packet(Base):
    """
    Materials gathered for one order item. At most one per order item;
    a partial packet gains sections in later rounds.
    """
    __tablename__ = "packets"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    packet_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="e.g., PKT-20260101-0001"
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("order_items.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=PacketStatus.PENDING.value,
        nullable=False,
        index=True,
        comment=enum_comment(PacketStatus)
    )

    # Partial packet tracking
    is_partial: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    packet_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    sections_included: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    sections_pending: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    current_round_sections: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    invalidated_sections: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Assignment
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    assigned_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Verification
    checked_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    check_result: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    items: Mapped[List["PacketItem"]] = relationship(
        "PacketItem",
        back_populates="packet",
        cascade="all, delete-orphan",
        order_by="PacketItem.position",
        lazy="selectin"
    )

    @property
    def total_items(self) -> int:
        return len(self.items)

    @property
    def picked_items(self) -> int:
        return sum(1 for item in self.items if item.is_picked)

    def __repr__(self) -> str:
        return f"<Packet(number='{self.packet_number}', status='{self.status}')>"


class PacketItem(Base):
    """One material line on a packet's pick list."""
    __tablename__ = "packet_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    packet_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("packets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    inventory_item_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    inventory_item_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    inventory_item_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    required_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit: Mapped[str] = mapped_column(String(30), default="Unit", nullable=False)
    rack_location: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    piece: Mapped[str] = mapped_column(String(100), nullable=False, comment="Section key")

    is_picked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    picked_qty: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"), nullable=False)
    picked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    added_in_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    packet: Mapped["Packet"] = relationship("Packet", back_populates="items")
