import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from stitchflow.config import settings
from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.models.order import OrderItemSection, OrderItemStatus, OrderStatus, SectionStatus
from stitchflow.models.production import ProductionAssignment
from stitchflow.schemas.order import PaymentCreate
from stitchflow.schemas.sales import AlterationSection, ReVideoSection
from stitchflow.services.inventory_service import InventoryService
from stitchflow.services.order_service import OrderService
from stitchflow.services.packet_service import PacketService
from stitchflow.services.procurement_service import ProcurementService
from stitchflow.services.production_service import ProductionService
from stitchflow.services.qa_service import QAService
from stitchflow.services.sales_approval_service import SalesApprovalService
from stitchflow.services.section_inventory_service import SectionInventoryService
from stitchflow.services.timeline_service import TimelineService


VIDEO = {"url": "https://cdn.example.com/qa/kurta-1.mp4"}


@pytest_asyncio.fixture
async def client_ready(db, ready_for_production, produce_all):
    """Order of 100000 with its only item filmed and ready to send."""
    order, item, materials = await ready_for_production(total_amount="100000")
    await produce_all(item)
    await QAService(db).record_video(item.id, VIDEO, qa_data={"checked_by": "QA Hina"})
    assert order.status == OrderStatus.READY_FOR_CLIENT_APPROVAL.value
    return order, item, materials


@pytest_asyncio.fixture
async def awaiting_client(db, client_ready):
    order, item, materials = client_ready
    await SalesApprovalService(db).send_to_client(order.id, sent_by="Sales Rida")
    return order, item, materials


# ==================== SEND / APPROVE ====================

async def test_send_to_client(db, awaiting_client):
    order, item, _ = awaiting_client

    assert order.status == OrderStatus.AWAITING_CLIENT_APPROVAL.value
    assert order.sent_to_client_at is not None
    assert item.status == OrderItemStatus.AWAITING_CLIENT_APPROVAL.value
    for section in item.sections:
        assert section.status == SectionStatus.AWAITING_CLIENT_APPROVAL.value
        assert section.sent_to_client_at is not None

    with pytest.raises(InvalidStateError):
        await SalesApprovalService(db).send_to_client(order.id)


async def test_send_requires_ready_order(db, ready_for_production):
    order, item, _ = await ready_for_production()

    with pytest.raises(InvalidStateError):
        await SalesApprovalService(db).send_to_client(order.id)


@pytest.mark.parametrize("count", [0, 11])
async def test_client_approval_screenshot_limits(db, awaiting_client, count):
    order, _, _ = awaiting_client

    with pytest.raises(InvalidStateError):
        await SalesApprovalService(db).client_approved(order.id, [f"shot-{i}.png" for i in range(count)])
    assert order.status == OrderStatus.AWAITING_CLIENT_APPROVAL.value


async def test_client_approved(db, awaiting_client):
    order, item, _ = awaiting_client

    await SalesApprovalService(db).client_approved(
        order.id, ["whatsapp-1.png", "whatsapp-2.png"], notes="Loved it", approved_by="Sales Rida",
    )

    assert order.status == OrderStatus.AWAITING_ACCOUNT_APPROVAL.value
    assert order.client_approval_data["screenshots"] == ["whatsapp-1.png", "whatsapp-2.png"]
    assert order.client_approval_data["approved_by"] == "Sales Rida"
    assert item.status == OrderItemStatus.CLIENT_APPROVED.value
    assert all(s.client_approved_at is not None for s in item.sections)


# ==================== PAYMENTS ====================

async def test_payments_must_cover_total(db, awaiting_client):
    order, item, _ = awaiting_client
    sales = SalesApprovalService(db)
    await sales.client_approved(order.id, ["proof.png"])
    await OrderService(db).record_payment(order.id, PaymentCreate(amount=Decimal("60000")))

    with pytest.raises(InvalidStateError) as exc:
        await sales.approve_payments(order.id)
    assert Decimal(exc.value.details["remaining_amount"]) == Decimal("40000")
    assert Decimal(exc.value.details["total_received"]) == Decimal("60000")
    assert order.status == OrderStatus.AWAITING_ACCOUNT_APPROVAL.value

    await OrderService(db).record_payment(order.id, PaymentCreate(amount=Decimal("40000")))
    await sales.approve_payments(order.id, approved_by="Accounts")

    assert order.status == OrderStatus.READY_FOR_DISPATCH.value
    assert item.status == OrderItemStatus.READY_FOR_DISPATCH.value


async def test_overpaid_order_is_approved(db, awaiting_client):
    order, _, _ = awaiting_client
    sales = SalesApprovalService(db)
    await sales.client_approved(order.id, ["proof.png"])
    await OrderService(db).record_payment(order.id, PaymentCreate(amount=Decimal("100500")))
    assert order.payment_status == "EXTRA_PAID"

    await sales.approve_payments(order.id)

    assert order.status == OrderStatus.READY_FOR_DISPATCH.value


async def test_payments_wait_for_client_approval(db, awaiting_client):
    order, _, _ = awaiting_client
    await OrderService(db).record_payment(order.id, PaymentCreate(amount=Decimal("100000")))

    with pytest.raises(InvalidStateError):
        await SalesApprovalService(db).approve_payments(order.id)


# ==================== CLIENT FEEDBACK ====================

async def test_re_video_request(db, awaiting_client):
    order, item, _ = awaiting_client
    sales = SalesApprovalService(db)

    await sales.request_re_video(
        order.id, item.id, [ReVideoSection(name="Dupatta", notes="Show the border closer")],
        requested_by="Sales Rida",
    )
    assert item.re_video_request["sections"] == [{"name": "dupatta", "notes": "Show the border closer"}]

    await QAService(db).record_video(item.id, {"url": "https://cdn.example.com/qa/kurta-1b.mp4"})
    assert item.re_video_request is None
    assert item.video_data["url"].endswith("kurta-1b.mp4")
    assert order.status == OrderStatus.AWAITING_CLIENT_APPROVAL.value


async def test_re_video_unknown_targets(db, awaiting_client):
    order, item, _ = awaiting_client
    sales = SalesApprovalService(db)

    with pytest.raises(NotFoundError):
        await sales.request_re_video(order.id, item.id, [ReVideoSection(name="Pouch")])
    with pytest.raises(NotFoundError):
        await sales.request_re_video(order.id, uuid.uuid4(), [ReVideoSection(name="Shirt")])


async def test_alteration_cycle(db, awaiting_client, produce_all):
    order, item, _ = awaiting_client
    sales = SalesApprovalService(db)

    await sales.request_alteration(
        order.id,
        [AlterationSection(order_item_id=item.id, section_name="Shirt", notes="Take in the waist 1 inch")],
        requested_by="Sales Rida",
    )

    shirt = item.get_section("shirt")
    assert shirt.status == SectionStatus.READY_FOR_PRODUCTION.value
    assert shirt.is_alteration is True
    assert shirt.alteration_notes == "Take in the waist 1 inch"
    assert item.get_section("dupatta").status == SectionStatus.AWAITING_CLIENT_APPROVAL.value
    assert item.status == OrderItemStatus.ALTERATION_REQUIRED.value
    assert item.video_data is None
    assert order.status == OrderStatus.IN_PROGRESS.value

    tasks = await produce_all(item)
    assert [(t.section_key, t.notes) for t in tasks] == [("shirt", "Take in the waist 1 inch")]

    await QAService(db).record_video(item.id, VIDEO)
    assert item.status == OrderItemStatus.READY_FOR_CLIENT_APPROVAL.value
    assert order.status == OrderStatus.READY_FOR_CLIENT_APPROVAL.value

    await sales.send_to_client(order.id)
    await sales.client_approved(order.id, ["final.png"])
    assert item.status == OrderItemStatus.CLIENT_APPROVED.value


async def test_alteration_resolves_every_section_first(db, awaiting_client):
    order, item, _ = awaiting_client

    with pytest.raises(NotFoundError):
        await SalesApprovalService(db).request_alteration(order.id, [
            AlterationSection(order_item_id=item.id, section_name="Shirt"),
            AlterationSection(order_item_id=item.id, section_name="Sleeves"),
        ])
    assert item.get_section("shirt").status == SectionStatus.AWAITING_CLIENT_APPROVAL.value
    assert order.status == OrderStatus.AWAITING_CLIENT_APPROVAL.value


async def test_client_rejected(db, awaiting_client):
    order, item, _ = awaiting_client
    sales = SalesApprovalService(db)

    with pytest.raises(ValidationError):
        await sales.client_rejected(order.id, reason=" ")

    await sales.client_rejected(order.id, reason="Colour not as expected", cancelled_by="Sales Rida")

    assert order.status == OrderStatus.CANCELLED_BY_CLIENT.value
    assert item.status == OrderItemStatus.CANCELLED_BY_CLIENT.value
    assert order.cancellation_data["reason"] == "Colour not as expected"
    with pytest.raises(InvalidStateError):
        await OrderService(db).record_payment(order.id, PaymentCreate(amount=Decimal("100")))


# ==================== START FROM SCRATCH ====================

async def test_start_from_scratch_resets_everything(db, awaiting_client):
    order, item, materials = awaiting_client
    chiffon = materials["chiffon"]
    stale = await ProcurementService(db).create_demand(item, "dupatta", {
        "inventory_item_id": chiffon.id,
        "inventory_item_name": chiffon.name,
        "required_qty": Decimal("2"),
        "available_qty": Decimal("0"),
        "shortage_qty": Decimal("2"),
        "unit": "Meter",
    })
    shirt = item.get_section("shirt")
    shirt.dyeing_round = 3
    shirt.is_alteration = True
    shirt.alteration_notes = "old note"
    old_qa = dict(shirt.qa_data)

    await SalesApprovalService(db).start_from_scratch(
        order.id, confirmed=True, reason="Client changed fabric", confirmed_by="Sales Rida",
    )

    assert order.status == OrderStatus.INVENTORY_CHECK.value
    assert order.sent_to_client_at is None
    assert item.status == OrderItemStatus.INVENTORY_CHECK.value
    assert [s.section_key for s in item.sections] == ["shirt", "dupatta"]
    for section in item.sections:
        assert section.status == SectionStatus.PENDING_INVENTORY_CHECK.value
        assert section.inventory_check_result is None
        assert section.production_task_id is None
        assert section.qa_status is None
        assert section.qa_data is None
        assert section.is_alteration is False
        assert section.alteration_notes is None
        assert section.dyeing_round == 1
        assert section.sent_to_client_at is None
    assert item.get_section("shirt").archived_qa_data == [old_qa]

    assert item.video_data is None
    assert item.archived_video_data[0]["url"] == VIDEO["url"]
    assert "archived_at" in item.archived_video_data[0]
    assert item.packet_id is None
    assert item.stock_deductions == []
    assert item.material_requirements is None

    assert await PacketService(db).get_packet_for_item(item.id) is None
    assert await ProcurementService(db).list_demands(order_item_id=item.id) == []
    assert await ProductionService(db).list_tasks(order_item_id=item.id) == []
    assignments = await db.scalar(
        select(func.count(ProductionAssignment.id)).where(ProductionAssignment.order_item_id == item.id)
    )
    assert assignments == 0
    with pytest.raises(NotFoundError):
        await ProcurementService(db).get_demand(stale.id)


async def test_start_from_scratch_resets_every_item(
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
        await QAService(db).record_video(item.id, VIDEO)
    sales = SalesApprovalService(db)
    await sales.send_to_client(order.id)

    await sales.start_from_scratch(order.id, confirmed=True, reason="Client rejected both pieces")

    assert order.status == OrderStatus.INVENTORY_CHECK.value
    for item in order.items:
        assert item.status == OrderItemStatus.INVENTORY_CHECK.value
        assert {s.status for s in item.sections} == {SectionStatus.PENDING_INVENTORY_CHECK.value}
        assert len(item.archived_video_data) == 1
        assert await PacketService(db).get_packet_for_item(item.id) is None
    assert await ProductionService(db).list_tasks() == []
    assert await ProcurementService(db).list_demands(order_id=order.id) == []


async def test_start_from_scratch_consumes_stock_by_default(db, awaiting_client):
    order, item, materials = awaiting_client
    lawn = materials["lawn"]

    await SalesApprovalService(db).start_from_scratch(order.id, confirmed=True, reason="Redo")

    assert await InventoryService(db).get_stock(lawn.id) == Decimal("7")
    entries = [e for e in await TimelineService(db).get_item_timeline(item.id) if e.action == "START_FROM_SCRATCH"]
    assert len(entries[0].details["consumed_deductions"]) == 2
    assert entries[0].details["restocked_deductions"] == []

    # The next check deducts again from what is left
    await SectionInventoryService(db).run_inventory_check(item.id)
    assert await InventoryService(db).get_stock(lawn.id) == Decimal("4")
    assert item.status == OrderItemStatus.CREATE_PACKET.value
    assert order.status == OrderStatus.IN_PROGRESS.value


async def test_start_from_scratch_can_restock(db, awaiting_client, monkeypatch):
    order, item, materials = awaiting_client
    monkeypatch.setattr(settings, "RESET_RESTOCKS_CONSUMED_MATERIALS", True)

    await SalesApprovalService(db).start_from_scratch(order.id, confirmed=True, reason="Redo")

    assert await InventoryService(db).get_stock(materials["lawn"].id) == Decimal("10")
    assert await InventoryService(db).get_stock(materials["chiffon"].id) == Decimal("10")


async def test_start_from_scratch_drops_stale_sections(db, awaiting_client):
    order, item, _ = awaiting_client
    item.sections.append(OrderItemSection(
        section_key="pouch", display_name="Pouch", position=2,
        status=SectionStatus.AWAITING_CLIENT_APPROVAL.value,
    ))
    await db.flush()

    await SalesApprovalService(db).start_from_scratch(order.id, confirmed=True, reason="Redo")

    assert [(s.section_key, s.position) for s in item.sections] == [("shirt", 0), ("dupatta", 1)]
    remaining = await db.scalar(
        select(func.count(OrderItemSection.id)).where(OrderItemSection.order_item_id == item.id)
    )
    assert remaining == 2


@pytest.mark.parametrize("confirmed,reason", [(False, "Redo"), (True, ""), (True, "   ")])
async def test_start_from_scratch_needs_confirmation_and_reason(db, awaiting_client, confirmed, reason):
    order, item, _ = awaiting_client

    with pytest.raises(ValidationError):
        await SalesApprovalService(db).start_from_scratch(order.id, confirmed=confirmed, reason=reason)
    assert order.status == OrderStatus.AWAITING_CLIENT_APPROVAL.value


async def test_start_from_scratch_only_while_awaiting_client(db, client_ready):
    order, _, _ = client_ready

    with pytest.raises(InvalidStateError):
        await SalesApprovalService(db).start_from_scratch(order.id, confirmed=True, reason="Redo")
