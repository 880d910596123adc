"""Order API endpoints: orders, items, payments and the timeline."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from stitchflow.api.deps import DB
from stitchflow.models.order import OrderStatus
from stitchflow.schemas.order import (
    OrderBrief,
    OrderCreate,
    OrderItemCreate,
    OrderItemResponse,
    OrderResponse,
    PaymentCreate,
    TimelineEntryResponse,
)
from stitchflow.services.order_service import OrderService
from stitchflow.services.timeline_service import TimelineService


router = APIRouter()


# ==================== ORDER CRUD ====================

@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(data: OrderCreate, db: DB):
    """Create an order; sections are derived from each item's pieces and add-ons."""
    service = OrderService(db)
    return await service.create_order(data)


@router.get("", response_model=List[OrderBrief])
async def list_orders(
    db: DB,
    status: Optional[OrderStatus] = Query(None),
    search: Optional[str] = Query(None, description="Order number or customer name"),
):
    service = OrderService(db)
    return await service.list_orders(status=status.value if status else None, search=search)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: uuid.UUID, db: DB):
    service = OrderService(db)
    return await service.get_order(order_id)


@router.post("/{order_id}/items", response_model=OrderItemResponse, status_code=status.HTTP_201_CREATED)
async def add_order_item(order_id: uuid.UUID, data: OrderItemCreate, db: DB):
    service = OrderService(db)
    return await service.add_order_item(order_id, data)


# ==================== PAYMENTS ====================

@router.post("/{order_id}/payments", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(order_id: uuid.UUID, data: PaymentCreate, db: DB):
    """Record a received payment and recompute the payment status."""
    service = OrderService(db)
    return await service.record_payment(order_id, data)


@router.delete("/{order_id}/payments/{payment_id}", response_model=OrderResponse)
async def delete_payment(order_id: uuid.UUID, payment_id: uuid.UUID, db: DB):
    service = OrderService(db)
    return await service.delete_payment(order_id, payment_id)


# ==================== TIMELINE ====================

@router.get("/{order_id}/timeline", response_model=List[TimelineEntryResponse])
async def get_order_timeline(order_id: uuid.UUID, db: DB):
    await OrderService(db).get_order(order_id)
    return await TimelineService(db).get_order_timeline(order_id)
