"""Pydantic schemas for packets and their pick lists."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import Field

from stitchflow.schemas.base import BaseCreateSchema, BaseResponseSchema


class PacketItemResponse(BaseResponseSchema):
    id: uuid.UUID
    inventory_item_id: uuid.UUID
    inventory_item_name: Optional[str] = None
    inventory_item_sku: Optional[str] = None
    required_qty: Decimal
    unit: str
    rack_location: Optional[str] = None
    piece: str
    is_picked: bool
    picked_qty: Decimal
    picked_at: Optional[datetime] = None
    added_in_round: int
    notes: Optional[str] = None


class PacketResponse(BaseResponseSchema):
    id: uuid.UUID
    packet_number: str
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    status: str
    is_partial: bool
    packet_round: int
    sections_included: list
    sections_pending: list
    current_round_sections: list
    invalidated_sections: list
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None
    check_result: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejection_notes: Optional[str] = None
    notes: Optional[str] = None
    total_items: int
    picked_items: int
    items: List[PacketItemResponse] = []
    created_at: datetime
    updated_at: datetime


class PacketAssignRequest(BaseCreateSchema):
    assigned_to: str = Field(..., min_length=1)
    assigned_by: Optional[str] = None
    notes: Optional[str] = None


class PickItemRequest(BaseCreateSchema):
    pick_item_id: uuid.UUID
    picked_qty: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class PacketRejectRequest(BaseCreateSchema):
    reason: str = ""
    checked_by: Optional[str] = None
    notes: Optional[str] = None
