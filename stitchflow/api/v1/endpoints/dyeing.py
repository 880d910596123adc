"""Dyeing endpoints. Omitting ``sections`` acts on every section in the expected status."""
import uuid

from fastapi import APIRouter

from stitchflow.api.deps import DB
from stitchflow.schemas.order import OrderItemResponse
from stitchflow.schemas.workflow import DyeingActionRequest, DyeingRejectRequest
from stitchflow.services.dyeing_service import DyeingService


router = APIRouter()


@router.post("/order-items/{order_item_id}/send", response_model=OrderItemResponse)
async def send_to_dyeing(order_item_id: uuid.UUID, db: DB, data: DyeingActionRequest = DyeingActionRequest()):
    return await DyeingService(db).send_to_dyeing(
        order_item_id, data.sections, performed_by=data.performed_by, notes=data.notes,
    )


@router.post("/order-items/{order_item_id}/accept", response_model=OrderItemResponse)
async def accept_dyeing(order_item_id: uuid.UUID, db: DB, data: DyeingActionRequest = DyeingActionRequest()):
    return await DyeingService(db).accept(
        order_item_id, data.sections, performed_by=data.performed_by, notes=data.notes,
    )


@router.post("/order-items/{order_item_id}/start", response_model=OrderItemResponse)
async def start_dyeing(order_item_id: uuid.UUID, db: DB, data: DyeingActionRequest = DyeingActionRequest()):
    return await DyeingService(db).start(
        order_item_id, data.sections, performed_by=data.performed_by, notes=data.notes,
    )


@router.post("/order-items/{order_item_id}/complete", response_model=OrderItemResponse)
async def complete_dyeing(order_item_id: uuid.UUID, db: DB, data: DyeingActionRequest = DyeingActionRequest()):
    return await DyeingService(db).complete(
        order_item_id, data.sections, performed_by=data.performed_by, notes=data.notes,
    )


@router.post("/order-items/{order_item_id}/reject", response_model=OrderItemResponse)
async def reject_dyeing(order_item_id: uuid.UUID, data: DyeingRejectRequest, db: DB):
    """
    Reject sections at dyeing.

    Their material is returned to stock and they leave the packet; the next
    rerun checks them again.
    """
    return await DyeingService(db).reject(
        order_item_id, data.sections, data.reason, notes=data.notes, rejected_by=data.rejected_by,
    )
