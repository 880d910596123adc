"""
Client approval gate endpoints.

Every action works on a whole order that is waiting on the client, except
send-to-client (order ready for approval) and approve-payments (order
waiting on accounts).
"""
import uuid

from fastapi import APIRouter

from stitchflow.api.deps import DB
from stitchflow.schemas.order import OrderItemResponse, OrderResponse
from stitchflow.schemas.sales import (
    AlterationRequest,
    ApprovePaymentsRequest,
    ClientApprovedRequest,
    ClientRejectedRequest,
    ReVideoRequest,
    SendToClientRequest,
    StartFromScratchRequest,
)
from stitchflow.services.sales_approval_service import SalesApprovalService


router = APIRouter()


@router.post("/order/{order_id}/send-to-client", response_model=OrderResponse)
async def send_to_client(order_id: uuid.UUID, db: DB, data: SendToClientRequest = SendToClientRequest()):
    return await SalesApprovalService(db).send_to_client(order_id, sent_by=data.sent_by)


@router.post("/order/{order_id}/client-approved", response_model=OrderResponse)
async def client_approved(order_id: uuid.UUID, data: ClientApprovedRequest, db: DB):
    """Client approved the videos; the order goes to accounts for payment approval."""
    return await SalesApprovalService(db).client_approved(
        order_id, data.screenshots, notes=data.notes, approved_by=data.approved_by,
    )


@router.post("/order/{order_id}/request-revideo", response_model=OrderItemResponse)
async def request_re_video(order_id: uuid.UUID, data: ReVideoRequest, db: DB):
    return await SalesApprovalService(db).request_re_video(
        order_id, data.order_item_id, data.sections, requested_by=data.requested_by,
    )


@router.post("/order/{order_id}/request-alteration", response_model=OrderResponse)
async def request_alteration(order_id: uuid.UUID, data: AlterationRequest, db: DB):
    """Send the named sections back to production; nothing else is rolled back."""
    return await SalesApprovalService(db).request_alteration(
        order_id, data.sections, requested_by=data.requested_by,
    )


@router.post("/order/{order_id}/client-rejected", response_model=OrderResponse)
async def client_rejected(order_id: uuid.UUID, data: ClientRejectedRequest, db: DB):
    return await SalesApprovalService(db).client_rejected(
        order_id, data.reason, cancelled_by=data.cancelled_by,
    )


@router.post("/order/{order_id}/start-from-scratch", response_model=OrderResponse)
async def start_from_scratch(order_id: uuid.UUID, data: StartFromScratchRequest, db: DB):
    """
    Roll every item of the order back to its first inventory check.

    Deletes the items' procurement demands, production tasks, assignments and
    packets, archives their videos and rebuilds their sections.
    """
    return await SalesApprovalService(db).start_from_scratch(
        order_id, data.confirmed, data.reason, confirmed_by=data.confirmed_by,
    )


@router.post("/order/{order_id}/approve-payments", response_model=OrderResponse)
async def approve_payments(order_id: uuid.UUID, db: DB, data: ApprovePaymentsRequest = ApprovePaymentsRequest()):
    return await SalesApprovalService(db).approve_payments(order_id, approved_by=data.approved_by)
