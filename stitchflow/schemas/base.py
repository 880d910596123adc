"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class PacketResponse(BaseResponseSchema):
            id: UUID
            packet_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Accepts string UUIDs from the frontend and ignores unknown fields.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class ActorRequest(BaseCreateSchema):
    """Body for actions that only record who performed them."""
    performed_by: Optional[str] = None
    notes: Optional[str] = None
