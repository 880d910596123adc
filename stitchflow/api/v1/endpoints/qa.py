import uuid

from fastapi import APIRouter

from stitchflow.api.deps import DB
from stitchflow.schemas.order import OrderItemResponse
from stitchflow.schemas.workflow import QAVideoRequest
from stitchflow.services.qa_service import QAService


router = APIRouter()


@router.post("/order-items/{order_item_id}/video", response_model=OrderItemResponse)
async def record_qa_video(order_item_id: uuid.UUID, data: QAVideoRequest, db: DB):
    """Record the QA video; sections become ready for client approval."""
    service = QAService(db)
    return await service.record_video(
        order_item_id, data.video_data, qa_data=data.qa_data, recorded_by=data.recorded_by,
    )
