"""Pydantic schemas for the inventory ledger and BOM lines."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import Field

from stitchflow.schemas.base import BaseCreateSchema, BaseResponseSchema


class InventoryItemCreate(BaseCreateSchema):
    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = None
    unit: str = "Unit"
    remaining_stock: Decimal = Field(Decimal("0"), ge=0)
    min_stock_level: Optional[Decimal] = Field(None, ge=0)
    rack_location: Optional[str] = None


class InventoryItemResponse(BaseResponseSchema):
    id: uuid.UUID
    sku: str
    name: str
    category: Optional[str] = None
    unit: str
    remaining_stock: Decimal
    min_stock_level: Optional[Decimal] = None
    rack_location: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StockAdjustRequest(BaseCreateSchema):
    quantity: Decimal = Field(..., gt=0)
    notes: Optional[str] = None
    created_by: Optional[str] = None


class StockMovementResponse(BaseResponseSchema):
    id: uuid.UUID
    movement_number: str
    movement_type: str
    inventory_item_id: uuid.UUID
    quantity: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reference_type: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    order_item_id: Optional[uuid.UUID] = None
    section: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class BOMLineCreate(BaseCreateSchema):
    product_id: str = Field(..., min_length=1)
    size: Optional[str] = None
    inventory_item_id: uuid.UUID
    quantity_per_unit: Decimal = Field(..., gt=0)
    unit: str = "Unit"
    piece: str = Field(..., min_length=1)


class BOMLineResponse(BaseResponseSchema):
    id: uuid.UUID
    product_id: str
    size: Optional[str] = None
    inventory_item_id: uuid.UUID
    quantity_per_unit: Decimal
    unit: str
    piece: str
