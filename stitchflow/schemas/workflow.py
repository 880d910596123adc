"""Pydantic schemas for inventory check, rerun, production, dyeing and QA actions."""
from datetime import datetime
from typing import List, Optional
import uuid

from pydantic import Field

from stitchflow.schemas.base import BaseCreateSchema, BaseResponseSchema


class InventoryCheckRequest(BaseCreateSchema):
    performed_by: Optional[str] = None


class InventoryCheckResponse(BaseResponseSchema):
    order_item_id: uuid.UUID
    status: str
    passed_sections: List[str]
    failed_sections: List[str]
    packet_id: Optional[uuid.UUID] = None
    demands_created: int = 0
    material_requirements: List[dict] = []


class RerunResponse(BaseResponseSchema):
    order_item_id: uuid.UUID
    status: str
    passed_sections: List[str]
    failed_sections: List[str]
    skipped_sections: List[str]
    packet_id: Optional[uuid.UUID] = None


class ProductionAssignRequest(BaseCreateSchema):
    assigned_to: str = Field(..., min_length=1)
    assigned_by: Optional[str] = None


class ProductionTaskResponse(BaseResponseSchema):
    id: uuid.UUID
    assignment_id: Optional[uuid.UUID] = None
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    section_key: str
    status: str
    worker: Optional[str] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class TaskActionRequest(BaseCreateSchema):
    worker: Optional[str] = None
    notes: Optional[str] = None


class DyeingActionRequest(BaseCreateSchema):
    sections: Optional[List[str]] = None
    performed_by: Optional[str] = None
    notes: Optional[str] = None


class DyeingRejectRequest(BaseCreateSchema):
    sections: List[str] = Field(..., min_length=1)
    reason: str = ""
    notes: Optional[str] = None
    rejected_by: Optional[str] = None


class QAVideoRequest(BaseCreateSchema):
    video_data: dict
    qa_data: Optional[dict] = None
    recorded_by: Optional[str] = None
