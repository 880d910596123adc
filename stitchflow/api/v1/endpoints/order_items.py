"""
Order item API endpoints.

Covers form approval, the section inventory check and rerun, and the
packet picking and verification workflow of a single order item.
"""
from typing import List
import uuid

from fastapi import APIRouter

from stitchflow.api.deps import DB
from stitchflow.schemas.base import ActorRequest
from stitchflow.schemas.order import FormApproveRequest, OrderItemResponse, TimelineEntryResponse
from stitchflow.schemas.packet import (
    PacketAssignRequest,
    PacketRejectRequest,
    PacketResponse,
    PickItemRequest,
)
from stitchflow.schemas.workflow import InventoryCheckRequest, InventoryCheckResponse, RerunResponse
from stitchflow.services.order_service import OrderService
from stitchflow.services.packet_service import PacketService
from stitchflow.services.section_inventory_service import SectionInventoryService
from stitchflow.services.timeline_service import TimelineService


router = APIRouter()


@router.get("/{order_item_id}", response_model=OrderItemResponse)
async def get_order_item(order_item_id: uuid.UUID, db: DB):
    """Get an order item with its sections."""
    return await OrderService(db).get_order_item(order_item_id)


@router.get("/{order_item_id}/timeline", response_model=List[TimelineEntryResponse])
async def get_order_item_timeline(order_item_id: uuid.UUID, db: DB):
    await OrderService(db).get_order_item(order_item_id)
    return await TimelineService(db).get_item_timeline(order_item_id)


@router.post("/{order_item_id}/approve-form", response_model=OrderItemResponse)
async def approve_form(order_item_id: uuid.UUID, db: DB, data: FormApproveRequest = FormApproveRequest()):
    return await OrderService(db).approve_form(order_item_id, approved_by=data.approved_by)


# ==================== INVENTORY CHECK ====================

@router.post("/{order_item_id}/inventory-check", response_model=InventoryCheckResponse)
async def run_inventory_check(
    order_item_id: uuid.UUID,
    db: DB,
    data: InventoryCheckRequest = InventoryCheckRequest(),
):
    """
    Check every section still waiting on material.

    Sections with enough stock are deducted and go into the packet; short
    sections raise procurement demands and wait. The response lists both.
    """
    service = SectionInventoryService(db)
    return await service.run_inventory_check(order_item_id, performed_by=data.performed_by)


@router.post("/{order_item_id}/rerun-section-inventory-check", response_model=RerunResponse)
async def rerun_section_inventory_check(
    order_item_id: uuid.UUID,
    db: DB,
    data: InventoryCheckRequest = InventoryCheckRequest(),
):
    """Recheck only sections whose procurement demands are no longer open or ordered."""
    service = SectionInventoryService(db)
    return await service.rerun_section_inventory_check(order_item_id, performed_by=data.performed_by)


# ==================== PACKET WORKFLOW ====================

@router.get("/{order_item_id}/packet", response_model=PacketResponse)
async def get_packet(order_item_id: uuid.UUID, db: DB):
    return await PacketService(db).require_packet_for_item(order_item_id)


@router.post("/{order_item_id}/packet/assign", response_model=PacketResponse)
async def assign_packet(order_item_id: uuid.UUID, data: PacketAssignRequest, db: DB):
    order_item = await OrderService(db).get_order_item(order_item_id)
    return await PacketService(db).assign(
        order_item, data.assigned_to, assigned_by=data.assigned_by, notes=data.notes,
    )


@router.post("/{order_item_id}/packet/start", response_model=PacketResponse)
async def start_packet(order_item_id: uuid.UUID, db: DB, data: ActorRequest = ActorRequest()):
    order_item = await OrderService(db).get_order_item(order_item_id)
    return await PacketService(db).start(order_item, started_by=data.performed_by)


@router.post("/{order_item_id}/packet/pick-item", response_model=PacketResponse)
async def pick_packet_item(order_item_id: uuid.UUID, data: PickItemRequest, db: DB):
    order_item = await OrderService(db).get_order_item(order_item_id)
    return await PacketService(db).pick_item(
        order_item, data.pick_item_id, picked_qty=data.picked_qty, notes=data.notes,
    )


@router.post("/{order_item_id}/packet/complete", response_model=PacketResponse)
async def complete_packet(order_item_id: uuid.UUID, db: DB, data: ActorRequest = ActorRequest()):
    order_item = await OrderService(db).get_order_item(order_item_id)
    return await PacketService(db).complete(order_item, completed_by=data.performed_by, notes=data.notes)


@router.post("/{order_item_id}/packet/approve", response_model=PacketResponse)
async def approve_packet(order_item_id: uuid.UUID, db: DB, data: ActorRequest = ActorRequest()):
    """Verify the packet; its sections move on to production."""
    order_item = await OrderService(db).get_order_item(order_item_id)
    return await PacketService(db).approve(order_item, checked_by=data.performed_by, notes=data.notes)


@router.post("/{order_item_id}/packet/reject", response_model=PacketResponse)
async def reject_packet(order_item_id: uuid.UUID, data: PacketRejectRequest, db: DB):
    order_item = await OrderService(db).get_order_item(order_item_id)
    return await PacketService(db).reject(
        order_item, data.reason, checked_by=data.checked_by, notes=data.notes,
    )
