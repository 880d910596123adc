from typing import List, Optional
from datetime import datetime, timezone
from decimal import Decimal
import uuid
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.core.section_keys import derive_section_keys
from stitchflow.models.order import (
    Order,
    OrderItem,
    OrderItemSection,
    OrderItemStatus,
    OrderPayment,
    OrderStatus,
    PaymentStatus,
)
from stitchflow.schemas.order import OrderCreate, OrderItemCreate, PaymentCreate
from stitchflow.services.state_machine import transition_order, transition_order_item
from stitchflow.services.timeline_service import TimelineService

logger = logging.getLogger(__name__)


def build_sections(included_items: list, selected_add_ons: list) -> List[OrderItemSection]:
    """One fresh section per canonical piece key, in display order."""
    return [
        OrderItemSection(section_key=key, display_name=name, position=position)
        for position, (key, name) in enumerate(derive_section_keys(included_items, selected_add_ons).items())
    ]


def compute_payment_status(total_amount: Decimal, total_received: Decimal) -> str:
    if total_received > total_amount:
        return PaymentStatus.EXTRA_PAID.value
    if total_received == total_amount and total_amount > 0:
        return PaymentStatus.PAID.value
    return PaymentStatus.PENDING.value


class OrderService:
    """Service for managing orders, order items and payments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.timeline = TimelineService(db)

    # ==================== ORDER NUMBER GENERATION ====================

    async def generate_order_number(self) -> str:
        """Generate unique order number: ORD-YYYYMMDD-XXXX"""
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        prefix = f"ORD-{today}-"

        stmt = select(func.count(Order.id)).where(
            Order.order_number.like(f"{prefix}%")
        )
        count = (await self.db.execute(stmt)).scalar() or 0

        return f"{prefix}{(count + 1):04d}"

    # ==================== ORDER METHODS ====================

    async def get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Order]:
        query = select(Order).order_by(Order.created_at.desc())
        if status:
            query = query.where(Order.status == status)
        if search:
            query = query.where(
                Order.order_number.ilike(f"%{search}%") | Order.customer_name.ilike(f"%{search}%")
            )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_order(self, data: OrderCreate, created_by: Optional[str] = None) -> Order:
        """Create a new order with its items and their sections."""
        items = [self._build_item(item_data) for item_data in data.items]

        order = Order(
            order_number=await self.generate_order_number(),
            customer_name=data.customer_name,
            currency=data.currency,
            total_amount=data.total_amount,
            notes=data.notes,
            status=OrderStatus.RECEIVED.value,
            payment_status=PaymentStatus.PENDING.value,
            items=items,
            payments=[],
        )
        self.db.add(order)
        await self.db.flush()

        await self.timeline.log(
            order.id, "ORDER_CREATED",
            f"Order {order.order_number} created with {len(items)} items",
            performed_by=created_by,
        )
        logger.info("Created order %s (%d items)", order.order_number, len(items))
        return order

    async def add_order_item(self, order_id: uuid.UUID, data: OrderItemCreate) -> OrderItem:
        order = await self.get_order(order_id)
        if order.status not in (OrderStatus.RECEIVED.value, OrderStatus.IN_PROGRESS.value):
            raise InvalidStateError(
                f"Cannot add items to order in {order.status} status",
                details={"current_status": order.status},
            )
        item = self._build_item(data)
        order.items.append(item)
        await self.db.flush()
        return item

    def _build_item(self, data: OrderItemCreate) -> OrderItem:
        included = [p.model_dump(mode="json") for p in data.included_items]
        add_ons = [p.model_dump(mode="json") for p in data.selected_add_ons]
        sections = build_sections(included, add_ons)
        if not sections:
            raise ValidationError(
                f"Order item for product {data.product_id} has no pieces",
                details={"product_id": data.product_id},
            )
        return OrderItem(
            product_id=data.product_id,
            product_name=data.product_name,
            product_sku=data.product_sku,
            size=data.size,
            quantity=data.quantity,
            custom_bom=[line.model_dump(mode="json") for line in data.custom_bom] if data.custom_bom else None,
            included_items=included,
            selected_add_ons=add_ons,
            status=OrderItemStatus.RECEIVED.value,
            sections=sections,
        )

    # ==================== ORDER ITEM METHODS ====================

    async def get_order_item(self, order_item_id: uuid.UUID) -> OrderItem:
        item = await self.db.get(OrderItem, order_item_id)
        if not item:
            raise NotFoundError(f"Order item {order_item_id} not found")
        return item

    async def approve_form(self, order_item_id: uuid.UUID, approved_by: Optional[str] = None) -> OrderItem:
        """Customer form approved: the item enters inventory checks."""
        item = await self.get_order_item(order_item_id)
        if item.status != OrderItemStatus.RECEIVED.value:
            raise InvalidStateError(
                f"Form can only be approved for RECEIVED items (current: {item.status})",
                details={"current_status": item.status},
            )
        order = await self.get_order(item.order_id)

        transition_order_item(item, OrderItemStatus.INVENTORY_CHECK)
        item.form_approved = True
        item.form_approved_by = approved_by
        item.form_approved_at = datetime.now(timezone.utc)
        if order.status == OrderStatus.RECEIVED.value:
            transition_order(order, OrderStatus.IN_PROGRESS)

        await self.timeline.log(
            order.id, "FORM_APPROVED", "Customer form approved, awaiting inventory check",
            order_item_id=item.id, performed_by=approved_by,
        )
        return item

    # ==================== PAYMENT METHODS ====================

    async def record_payment(self, order_id: uuid.UUID, data: PaymentCreate) -> Order:
        order = await self.get_order(order_id)
        if order.status == OrderStatus.CANCELLED_BY_CLIENT.value:
            raise InvalidStateError("Cannot record payments on a cancelled order")
        order.payments.append(OrderPayment(amount=data.amount, receipt_ref=data.receipt_ref))
        await self.db.flush()
        self._refresh_payment_status(order)
        await self.timeline.log(
            order.id, "PAYMENT_RECORDED", f"Payment of {data.amount} {order.currency} recorded",
            details={"amount": data.amount, "receipt_ref": data.receipt_ref},
        )
        return order

    async def delete_payment(self, order_id: uuid.UUID, payment_id: uuid.UUID) -> Order:
        order = await self.get_order(order_id)
        payment = next((p for p in order.payments if p.id == payment_id), None)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found on order {order.order_number}")
        order.payments.remove(payment)
        await self.db.flush()
        self._refresh_payment_status(order)
        return order

    def _refresh_payment_status(self, order: Order) -> None:
        order.payment_status = compute_payment_status(Decimal(order.total_amount or 0), order.total_received)
