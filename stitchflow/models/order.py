"""Order, order item and section models for custom garment orders."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stitchflow.core.enum_utils import enum_comment
from stitchflow.database import Base
from stitchflow.db_types import JSONType, UUIDType, MoneyType


class OrderStatus(str, Enum):
    """Order lifecycle status."""
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    INVENTORY_CHECK = "INVENTORY_CHECK"                    # Reset back to material checks
    READY_FOR_CLIENT_APPROVAL = "READY_FOR_CLIENT_APPROVAL"
    AWAITING_CLIENT_APPROVAL = "AWAITING_CLIENT_APPROVAL"
    AWAITING_ACCOUNT_APPROVAL = "AWAITING_ACCOUNT_APPROVAL"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    CANCELLED_BY_CLIENT = "CANCELLED_BY_CLIENT"


class OrderItemStatus(str, Enum):
    """Order item status, derived from its sections while in flight."""
    RECEIVED = "RECEIVED"
    INVENTORY_CHECK = "INVENTORY_CHECK"
    AWAITING_MATERIAL = "AWAITING_MATERIAL"
    PARTIAL_CREATE_PACKET = "PARTIAL_CREATE_PACKET"
    CREATE_PACKET = "CREATE_PACKET"
    PACKET_CHECK = "PACKET_CHECK"
    READY_FOR_PRODUCTION = "READY_FOR_PRODUCTION"
    PARTIAL_IN_PRODUCTION = "PARTIAL_IN_PRODUCTION"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRODUCTION_COMPLETED = "PRODUCTION_COMPLETED"
    READY_FOR_DYEING = "READY_FOR_DYEING"
    PARTIALLY_IN_DYEING = "PARTIALLY_IN_DYEING"
    IN_DYEING = "IN_DYEING"
    DYEING_COMPLETED = "DYEING_COMPLETED"
    QUALITY_ASSURANCE = "QUALITY_ASSURANCE"
    READY_FOR_CLIENT_APPROVAL = "READY_FOR_CLIENT_APPROVAL"
    AWAITING_CLIENT_APPROVAL = "AWAITING_CLIENT_APPROVAL"
    ALTERATION_REQUIRED = "ALTERATION_REQUIRED"
    CLIENT_APPROVED = "CLIENT_APPROVED"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    COMPLETED = "COMPLETED"
    CANCELLED_BY_CLIENT = "CANCELLED_BY_CLIENT"


class SectionStatus(str, Enum):
    """Per-section sub-state."""
    PENDING_INVENTORY_CHECK = "PENDING_INVENTORY_CHECK"
    AWAITING_MATERIAL = "AWAITING_MATERIAL"
    INVENTORY_PASSED = "INVENTORY_PASSED"
    PACKET_CREATED = "PACKET_CREATED"
    PACKET_VERIFIED = "PACKET_VERIFIED"
    READY_FOR_PRODUCTION = "READY_FOR_PRODUCTION"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRODUCTION_COMPLETED = "PRODUCTION_COMPLETED"
    READY_FOR_DYEING = "READY_FOR_DYEING"
    DYEING_ACCEPTED = "DYEING_ACCEPTED"
    DYEING_IN_PROGRESS = "DYEING_IN_PROGRESS"
    DYEING_COMPLETED = "DYEING_COMPLETED"
    QA_PENDING = "QA_PENDING"
    READY_FOR_CLIENT_APPROVAL = "READY_FOR_CLIENT_APPROVAL"
    AWAITING_CLIENT_APPROVAL = "AWAITING_CLIENT_APPROVAL"
    CLIENT_APPROVED = "CLIENT_APPROVED"


class PaymentStatus(str, Enum):
    """Order payment status, recomputed from recorded payments."""
    PENDING = "PENDING"
    PAID = "PAID"
    EXTRA_PAID = "EXTRA_PAID"


class Order(Base):
    """
    Customer order. Owns one or more order items and the payment record.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="e.g., ORD-20260101-0001"
    )
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="PKR", nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.RECEIVED.value,
        nullable=False,
        index=True,
        comment=enum_comment(OrderStatus)
    )
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        comment=enum_comment(PaymentStatus)
    )

    # Client approval gate
    sent_to_client_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    client_approval_data: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="screenshots, notes, approved_by, approved_at"
    )
    cancellation_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

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

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
        lazy="selectin"
    )
    payments: Mapped[List["OrderPayment"]] = relationship(
        "OrderPayment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderPayment.created_at",
        lazy="selectin"
    )

    @property
    def total_received(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))

    @property
    def remaining_amount(self) -> Decimal:
        return max(Decimal("0"), Decimal(self.total_amount or 0) - self.total_received)

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderPayment(Base):
    """A payment received against an order."""
    __tablename__ = "order_payments"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    receipt_ref: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="payments")


class OrderItem(Base):
    """
    One garment on an order. Decomposes into independent sections.
    """
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Catalog reference (denormalized for display)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Bespoke sizing carries its own bill of materials
    custom_bom: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Pieces: [{"piece": "shirt", "price": 0}]
    included_items: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    selected_add_ons: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderItemStatus.RECEIVED.value,
        nullable=False,
        index=True,
        comment=enum_comment(OrderItemStatus)
    )
    form_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    form_approved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    form_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Inventory check history
    material_requirements: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    stock_deductions: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Ledger writes caused by this item's section checks"
    )
    last_inventory_check: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sections_inventory_checked: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Not a foreign key: packets reference order_items, this is the reverse pointer
    packet_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # QA video and client feedback
    video_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    archived_video_data: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    re_video_request: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

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

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    sections: Mapped[List["OrderItemSection"]] = relationship(
        "OrderItemSection",
        back_populates="order_item",
        cascade="all, delete-orphan",
        order_by="OrderItemSection.position",
        lazy="selectin"
    )

    def get_section(self, key: str) -> Optional["OrderItemSection"]:
        for section in self.sections:
            if section.section_key == key:
                return section
        return None

    def __repr__(self) -> str:
        return f"<OrderItem(id='{self.id}', status='{self.status}')>"


class OrderItemSection(Base):
    """
    Workflow state of one piece (shirt, dupatta, pouch...) of an order item.

    Section keys are stored lower-cased and are unique per order item.
    """
    __tablename__ = "order_item_sections"
    __table_args__ = (
        UniqueConstraint("order_item_id", "section_key", name="uq_order_item_section_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    section_key: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=SectionStatus.PENDING_INVENTORY_CHECK.value,
        nullable=False,
        index=True,
        comment=enum_comment(SectionStatus)
    )
    status_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # {"passed": bool, "checked_at": iso, "materials": [...], "shortages": [...]}
    inventory_check_result: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    packet_pick_list: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    production_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # QA
    qa_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    qa_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    archived_qa_data: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Alteration
    is_alteration: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    alteration_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    alteration_requested_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    alteration_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Dyeing
    dyeing_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    dyeing_rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dyeing_rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Client approval
    sent_to_client_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    client_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order_item: Mapped["OrderItem"] = relationship("OrderItem", back_populates="sections")

    def __repr__(self) -> str:
        return f"<OrderItemSection(key='{self.section_key}', status='{self.status}')>"
