import uuid

import pytest

from stitchflow.core.events import section_events
from stitchflow.core.exceptions import InvalidStateError, NotFoundError
from stitchflow.models.order import OrderItemStatus, OrderStatus, SectionStatus
from stitchflow.services.dyeing_service import DyeingService
from stitchflow.services.order_service import OrderService
from stitchflow.services.qa_service import QAService
from stitchflow.services.section_inventory_service import SectionInventoryService


VIDEO = {"url": "https://cdn.example.com/qa/kurta-1.mp4", "duration": 42}


async def test_video_moves_item_to_client_approval(db, ready_for_production, produce_all):
    order, item, _ = await ready_for_production()
    await produce_all(item)
    ready = []
    section_events.subscribe(SectionStatus.READY_FOR_CLIENT_APPROVAL.value, ready.append)

    await QAService(db).record_video(item.id, VIDEO, qa_data={"checked_by": "QA Hina"}, recorded_by="QA Hina")

    assert {s.status for s in item.sections} == {SectionStatus.READY_FOR_CLIENT_APPROVAL.value}
    assert {s.qa_status for s in item.sections} == {"APPROVED"}
    assert item.get_section("shirt").qa_data["checked_by"] == "QA Hina"
    assert item.video_data["url"] == VIDEO["url"]
    assert item.video_data["recorded_by"] == "QA Hina"
    assert item.status == OrderItemStatus.READY_FOR_CLIENT_APPROVAL.value
    assert order.status == OrderStatus.READY_FOR_CLIENT_APPROVAL.value
    assert sorted(e.section for e in ready) == ["dupatta", "shirt"]


async def test_dyed_and_undyed_sections_both_qualify(db, ready_for_production, produce_all):
    order, item, _ = await ready_for_production()
    await produce_all(item)
    dyeing = DyeingService(db)
    await dyeing.send_to_dyeing(item.id, ["shirt"])
    await dyeing.accept(item.id)
    await dyeing.start(item.id)

    with pytest.raises(InvalidStateError) as exc:
        await QAService(db).record_video(item.id, VIDEO)
    assert exc.value.details["sections"] == {"shirt": SectionStatus.DYEING_IN_PROGRESS.value}

    await dyeing.complete(item.id)
    await QAService(db).record_video(item.id, VIDEO)
    assert item.status == OrderItemStatus.READY_FOR_CLIENT_APPROVAL.value


async def test_video_requires_finished_production(db, ready_for_production):
    order, item, _ = await ready_for_production()

    with pytest.raises(InvalidStateError):
        await QAService(db).record_video(item.id, VIDEO)
    assert item.video_data is None


async def test_order_waits_for_every_item_video(
    db, make_order, make_material, add_bom_line, pick_and_approve, produce_all,
):
    lawn = await make_material("FAB-LAWN", 10)
    chiffon = await make_material("FAB-CHIFFON", 10)
    await add_bom_line(lawn, "Shirt", 3)
    await add_bom_line(chiffon, "Dupatta", 2)
    order = await make_order(items=2)
    for item in order.items:
        await OrderService(db).approve_form(item.id)
        await SectionInventoryService(db).run_inventory_check(item.id)
        await pick_and_approve(item)
        await produce_all(item)
    first, second = order.items

    await QAService(db).record_video(first.id, VIDEO)
    assert order.status == OrderStatus.IN_PROGRESS.value

    await QAService(db).record_video(second.id, VIDEO)
    assert order.status == OrderStatus.READY_FOR_CLIENT_APPROVAL.value


async def test_unknown_item(db):
    with pytest.raises(NotFoundError):
        await QAService(db).record_video(uuid.uuid4(), VIDEO)
