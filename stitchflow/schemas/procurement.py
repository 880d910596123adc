"""Pydantic schemas for procurement demands."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

from stitchflow.core.enum_utils import create_uppercase_validator, enum_values
from stitchflow.models.procurement import DemandStatus
from stitchflow.schemas.base import BaseCreateSchema, BaseResponseSchema


VALID_DEMAND_STATUSES = set(enum_values(DemandStatus))


class DemandResponse(BaseResponseSchema):
    id: uuid.UUID
    demand_number: str
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    inventory_item_id: uuid.UUID
    inventory_item_name: Optional[str] = None
    inventory_item_sku: Optional[str] = None
    required_qty: Decimal
    available_qty: Decimal
    shortage_qty: Decimal
    unit: str
    affected_section: str
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    fulfilled_at: Optional[datetime] = None


class DemandUpdate(BaseCreateSchema):
    status: Optional[DemandStatus] = None
    notes: Optional[str] = None

    normalize_status = create_uppercase_validator('status', VALID_DEMAND_STATUSES)


class DemandStats(BaseResponseSchema):
    open: int = 0
    ordered: int = 0
    received: int = 0
    fulfilled: int = 0
    cancelled: int = 0
    total: int = 0
