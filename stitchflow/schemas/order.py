"""Pydantic schemas for orders, order items, sections and payments."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import Field

from stitchflow.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== INPUT SCHEMAS ====================

class PieceEntry(BaseCreateSchema):
    """An included piece or add-on of an order item."""
    piece: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(Decimal("0"), ge=0)


class CustomBOMLine(BaseCreateSchema):
    inventory_item_id: uuid.UUID
    quantity: Decimal = Field(..., gt=0, description="Quantity per garment")
    unit: Optional[str] = None
    piece: str = Field(..., min_length=1)


class OrderItemCreate(BaseCreateSchema):
    product_id: str = Field(..., min_length=1, max_length=100)
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    size: Optional[str] = None
    quantity: int = Field(1, ge=1)
    custom_bom: Optional[List[CustomBOMLine]] = None
    included_items: List[PieceEntry] = Field(default_factory=list)
    selected_add_ons: List[PieceEntry] = Field(default_factory=list)


class OrderCreate(BaseCreateSchema):
    customer_name: str = Field(..., min_length=1, max_length=200)
    currency: str = "PKR"
    total_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)


class PaymentCreate(BaseCreateSchema):
    amount: Decimal = Field(..., gt=0)
    receipt_ref: Optional[str] = None


class FormApproveRequest(BaseCreateSchema):
    approved_by: Optional[str] = None


# ==================== RESPONSE SCHEMAS ====================

class SectionResponse(BaseResponseSchema):
    id: uuid.UUID
    section_key: str
    display_name: str
    status: str
    status_updated_at: Optional[datetime] = None
    inventory_check_result: Optional[dict] = None
    packet_pick_list: Optional[list] = None
    production_task_id: Optional[uuid.UUID] = None
    qa_status: Optional[str] = None
    qa_data: Optional[dict] = None
    archived_qa_data: Optional[list] = None
    is_alteration: bool = False
    alteration_notes: Optional[str] = None
    alteration_requested_by: Optional[str] = None
    alteration_requested_at: Optional[datetime] = None
    dyeing_round: int = 1
    dyeing_rejection_reason: Optional[str] = None
    dyeing_rejected_at: Optional[datetime] = None
    sent_to_client_at: Optional[datetime] = None
    client_approved_at: Optional[datetime] = None


class OrderItemResponse(BaseResponseSchema):
    id: uuid.UUID
    order_id: uuid.UUID
    product_id: str
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    size: Optional[str] = None
    quantity: int
    custom_bom: Optional[list] = None
    included_items: list
    selected_add_ons: list
    status: str
    form_approved: bool
    material_requirements: Optional[list] = None
    stock_deductions: Optional[list] = None
    last_inventory_check: Optional[datetime] = None
    sections_inventory_checked: Optional[list] = None
    packet_id: Optional[uuid.UUID] = None
    video_data: Optional[dict] = None
    archived_video_data: Optional[list] = None
    re_video_request: Optional[dict] = None
    sections: List[SectionResponse] = []
    created_at: datetime
    updated_at: datetime


class PaymentResponse(BaseResponseSchema):
    id: uuid.UUID
    amount: Decimal
    receipt_ref: Optional[str] = None
    created_at: datetime


class OrderResponse(BaseResponseSchema):
    id: uuid.UUID
    order_number: str
    customer_name: str
    currency: str
    total_amount: Decimal
    total_received: Decimal
    remaining_amount: Decimal
    payment_status: str
    status: str
    sent_to_client_at: Optional[datetime] = None
    client_approval_data: Optional[dict] = None
    cancellation_data: Optional[dict] = None
    notes: Optional[str] = None
    items: List[OrderItemResponse] = []
    payments: List[PaymentResponse] = []
    created_at: datetime
    updated_at: datetime


class OrderBrief(BaseResponseSchema):
    id: uuid.UUID
    order_number: str
    customer_name: str
    status: str
    payment_status: str
    total_amount: Decimal
    created_at: datetime


class TimelineEntryResponse(BaseResponseSchema):
    id: uuid.UUID
    order_id: uuid.UUID
    order_item_id: Optional[uuid.UUID] = None
    action: str
    performed_by: Optional[str] = None
    description: Optional[str] = None
    details: Optional[dict] = None
    created_at: datetime
