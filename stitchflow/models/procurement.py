"""Procurement demand model: material shortages blocking a section."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from stitchflow.core.enum_utils import enum_comment
from stitchflow.database import Base
from stitchflow.db_types import UUIDType, QuantityType


class DemandStatus(str, Enum):
    """Procurement demand status."""
    OPEN = "OPEN"               # Raised, nothing ordered yet
    ORDERED = "ORDERED"         # Purchase placed with supplier
    RECEIVED = "RECEIVED"       # Goods in; section may be rechecked
    FULFILLED = "FULFILLED"     # Section passed its recheck
    CANCELLED = "CANCELLED"


# Demands in these statuses still block their section from a rerun
BLOCKING_DEMAND_STATUSES = (DemandStatus.OPEN.value, DemandStatus.ORDERED.value)

# Demands not yet closed out
ACTIVE_DEMAND_STATUSES = (
    DemandStatus.OPEN.value,
    DemandStatus.ORDERED.value,
    DemandStatus.RECEIVED.value,
)


class ProcurementDemand(Base):
    """
    A shortfall of one inventory item for one section of an order item.
    """
    __tablename__ = "procurement_demands"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    demand_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("inventory_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    inventory_item_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    inventory_item_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    required_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    available_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    shortage_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit: Mapped[str] = mapped_column(String(30), default="Unit", nullable=False)
    affected_section: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(50),
        default=DemandStatus.OPEN.value,
        nullable=False,
        index=True,
        comment=enum_comment(DemandStatus)
    )
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
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ProcurementDemand(number='{self.demand_number}', status='{self.status}')>"
