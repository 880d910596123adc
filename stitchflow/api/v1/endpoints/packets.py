"""Packet listing for the picking floor."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query

from stitchflow.api.deps import DB
from stitchflow.models.packet import PacketStatus
from stitchflow.schemas.packet import PacketResponse
from stitchflow.services.packet_service import PacketService


router = APIRouter()


@router.get("", response_model=List[PacketResponse])
async def list_packets(
    db: DB,
    status: Optional[PacketStatus] = Query(None),
    assigned_to: Optional[str] = Query(None),
):
    service = PacketService(db)
    return await service.list_packets(status=status.value if status else None, assigned_to=assigned_to)


@router.get("/{packet_id}", response_model=PacketResponse)
async def get_packet(packet_id: uuid.UUID, db: DB):
    return await PacketService(db).get_packet(packet_id)
