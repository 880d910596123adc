"""Raw material inventory and stock movement ledger models."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stitchflow.core.enum_utils import enum_comment
from stitchflow.database import Base
from stitchflow.db_types import UUIDType, QuantityType


class StockMovementType(str, Enum):
    """Stock movement type enum."""
    STOCK_IN = "STOCK_IN"                          # Goods received
    STOCK_OUT = "STOCK_OUT"                        # Manual issue / write-off
    ORDER_RESERVATION = "ORDER_RESERVATION"        # Deducted for a section that passed its check
    RESERVATION_RELEASE = "RESERVATION_RELEASE"    # Returned after a rejection or reset


class InventoryItem(Base):
    """A raw material (fabric, lace, thread, dye...) with its current stock."""
    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(30), default="Unit", nullable=False)

    remaining_stock: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"), nullable=False)
    min_stock_level: Mapped[Optional[Decimal]] = mapped_column(QuantityType, nullable=True)
    rack_location: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

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

    def __repr__(self) -> str:
        return f"<InventoryItem(sku='{self.sku}', stock={self.remaining_stock})>"


class StockMovement(Base):
    """Stock movement history/ledger. Append-only."""
    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    movement_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    movement_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment=enum_comment(StockMovementType)
    )

    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("inventory_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Positive for in, negative for out
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"))
    balance_after: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"))

    # Related documents
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    section: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    inventory_item: Mapped["InventoryItem"] = relationship("InventoryItem")

    def __repr__(self) -> str:
        return f"<StockMovement {self.movement_number}>"
