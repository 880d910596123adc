"""Pydantic schemas for the client approval gate."""
from typing import List, Optional
import uuid

from pydantic import Field

from stitchflow.schemas.base import BaseCreateSchema


class SendToClientRequest(BaseCreateSchema):
    sent_by: Optional[str] = None


class ClientApprovedRequest(BaseCreateSchema):
    # Count is enforced by the service so the error reads as a workflow rejection
    screenshots: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    approved_by: Optional[str] = None


class ReVideoSection(BaseCreateSchema):
    name: str = Field(..., min_length=1)
    notes: Optional[str] = None


class ReVideoRequest(BaseCreateSchema):
    order_item_id: uuid.UUID
    sections: List[ReVideoSection] = Field(..., min_length=1)
    requested_by: Optional[str] = None


class AlterationSection(BaseCreateSchema):
    order_item_id: uuid.UUID
    section_name: str = Field(..., min_length=1)
    notes: Optional[str] = None


class AlterationRequest(BaseCreateSchema):
    sections: List[AlterationSection] = Field(..., min_length=1)
    requested_by: Optional[str] = None


class ClientRejectedRequest(BaseCreateSchema):
    reason: str = ""
    cancelled_by: Optional[str] = None


class StartFromScratchRequest(BaseCreateSchema):
    confirmed: bool = False
    reason: str = ""
    confirmed_by: Optional[str] = None


class ApprovePaymentsRequest(BaseCreateSchema):
    approved_by: Optional[str] = None
