import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.models.inventory import StockMovementType
from stitchflow.models.order import OrderItemStatus, OrderStatus, SectionStatus
from stitchflow.models.packet import PacketStatus
from stitchflow.models.procurement import DemandStatus
from stitchflow.services.inventory_service import InventoryService
from stitchflow.services.packet_service import PacketService
from stitchflow.services.procurement_service import ProcurementService
from stitchflow.services.section_inventory_service import SectionInventoryService
from stitchflow.services.timeline_service import TimelineService


@pytest_asyncio.fixture
async def kurta_materials(make_material, add_bom_line):
    """Shirt needs 3m lawn (5 in stock); dupatta needs 2m lace (none in stock)."""
    fabric = await make_material("FAB-LAWN", 5, name="Lawn Fabric", rack_location="A-01")
    lace = await make_material("TRM-LACE", 0, name="Gold Lace")
    await add_bom_line(fabric, "Shirt", 3)
    await add_bom_line(lace, "Dupatta", 2)
    return fabric, lace


async def test_short_section_does_not_block_sibling(db, approved_item, kurta_materials):
    fabric, lace = kurta_materials
    order, item = await approved_item()

    result = await SectionInventoryService(db).run_inventory_check(item.id, performed_by="store")

    assert result.passed_sections == ["shirt"]
    assert result.failed_sections == ["dupatta"]
    assert result.demands_created == 1
    assert result.status == OrderItemStatus.PARTIAL_CREATE_PACKET.value
    assert item.status == OrderItemStatus.PARTIAL_CREATE_PACKET.value
    assert item.get_section("shirt").status == SectionStatus.INVENTORY_PASSED.value
    assert item.get_section("dupatta").status == SectionStatus.AWAITING_MATERIAL.value
    assert order.status == OrderStatus.IN_PROGRESS.value

    assert await InventoryService(db).get_stock(fabric.id) == Decimal("2")
    assert await InventoryService(db).get_stock(lace.id) == Decimal("0")

    demands = await ProcurementService(db).list_demands(order_item_id=item.id)
    assert len(demands) == 1
    demand = demands[0]
    assert demand.status == DemandStatus.OPEN.value
    assert demand.affected_section == "dupatta"
    assert demand.inventory_item_id == lace.id
    assert demand.required_qty == Decimal("2")
    assert demand.available_qty == Decimal("0")
    assert demand.shortage_qty == Decimal("2")
    assert demand.demand_number.startswith("PD-")

    packet = await PacketService(db).get_packet_for_item(item.id)
    assert item.packet_id == packet.id
    assert packet.status == PacketStatus.PENDING.value
    assert packet.is_partial is True
    assert packet.packet_round == 1
    assert packet.sections_included == ["shirt"]
    assert packet.sections_pending == ["dupatta"]
    assert [(i.piece, i.required_qty, i.rack_location) for i in packet.items] == [("shirt", Decimal("3"), "A-01")]


async def test_check_result_is_recorded_on_sections(db, approved_item, kurta_materials):
    order, item = await approved_item()

    await SectionInventoryService(db).run_inventory_check(item.id)

    dupatta = item.get_section("dupatta").inventory_check_result
    assert dupatta["passed"] is False
    assert dupatta["shortages"][0]["shortage_qty"] == 2.0
    assert item.get_section("shirt").inventory_check_result["passed"] is True
    assert item.sections_inventory_checked == ["dupatta", "shirt"]
    assert item.last_inventory_check is not None
    assert {r["piece"] for r in item.material_requirements} == {"shirt", "dupatta"}

    timeline = await TimelineService(db).get_item_timeline(item.id)
    check = [e for e in timeline if e.action == "INVENTORY_CHECK"]
    assert len(check) == 1
    assert check[0].details["passed_sections"] == ["shirt"]


async def test_repeated_check_never_deducts_twice(db, approved_item, kurta_materials):
    fabric, lace = kurta_materials
    order, item = await approved_item()
    service = SectionInventoryService(db)

    await service.run_inventory_check(item.id)
    second = await service.run_inventory_check(item.id)

    assert second.passed_sections == []
    assert second.failed_sections == ["dupatta"]
    assert second.status == OrderItemStatus.PARTIAL_CREATE_PACKET.value
    assert await InventoryService(db).get_stock(fabric.id) == Decimal("2")

    movements = await InventoryService(db).list_movements(order_item_id=item.id)
    assert len(movements) == 1
    demands = await ProcurementService(db).list_demands(order_item_id=item.id)
    assert [d.affected_section for d in demands] == ["dupatta"]
    packet = await PacketService(db).get_packet_for_item(item.id)
    assert packet.packet_round == 1


def _passed_requirement_total(item):
    passed = {s.section_key for s in item.sections if s.status == SectionStatus.INVENTORY_PASSED.value}
    return sum(
        (Decimal(str(r["required_qty"])) for r in item.material_requirements if r["piece"] in passed),
        Decimal("0"),
    )


async def test_repeated_check_keeps_passed_section_requirements(db, approved_item, kurta_materials):
    fabric, lace = kurta_materials
    order, item = await approved_item()
    service = SectionInventoryService(db)

    await service.run_inventory_check(item.id)
    await service.run_inventory_check(item.id)

    deducted = Decimal("5") - await InventoryService(db).get_stock(fabric.id)
    assert deducted == Decimal("3")
    assert _passed_requirement_total(item) == deducted
    assert sorted((r["piece"], r["status"]) for r in item.material_requirements) == [
        ("dupatta", "SHORTAGE"), ("shirt", "SUFFICIENT"),
    ]


async def test_check_on_fully_passed_item_keeps_requirements(db, approved_item, kurta_materials):
    fabric, lace = kurta_materials
    await InventoryService(db).stock_in(lace.id, 2)
    order, item = await approved_item()
    service = SectionInventoryService(db)

    first = await service.run_inventory_check(item.id)
    assert first.status == OrderItemStatus.CREATE_PACKET.value
    second = await service.run_inventory_check(item.id)

    assert second.passed_sections == second.failed_sections == []
    assert len(item.material_requirements) == 2
    assert _passed_requirement_total(item) == Decimal("5")


async def test_sections_sharing_a_material_cannot_double_reserve(db, approved_item, make_material, add_bom_line):
    lawn = await make_material("FAB-LAWN", 5)
    await add_bom_line(lawn, "Shirt", 3)
    await add_bom_line(lawn, "Dupatta", 3)
    order, item = await approved_item()

    result = await SectionInventoryService(db).run_inventory_check(item.id)

    assert result.passed_sections == ["shirt"]
    assert result.failed_sections == ["dupatta"]
    assert await InventoryService(db).get_stock(lawn.id) == Decimal("2")
    demands = await ProcurementService(db).list_demands(order_item_id=item.id)
    assert len(demands) == 1
    assert (demands[0].affected_section, demands[0].available_qty, demands[0].shortage_qty) == (
        "dupatta", Decimal("2"), Decimal("1"),
    )
    movements = await InventoryService(db).list_movements(order_item_id=item.id)
    assert [m.quantity for m in movements] == [Decimal("-3")]


async def test_deductions_match_passed_requirements(db, approved_item, make_material, add_bom_line):
    fabric = await make_material("FAB-SILK", 20)
    thread = await make_material("THR-GOLD", 5, unit="Spool")
    # Two lines for the same material are consolidated
    await add_bom_line(fabric, "Shirt", 2)
    await add_bom_line(fabric, "Shirt", "1")
    await add_bom_line(thread, "Shirt", "0.5")
    order, item = await approved_item(pieces=("Shirt",), quantity=2)

    result = await SectionInventoryService(db).run_inventory_check(item.id)

    assert result.status == OrderItemStatus.CREATE_PACKET.value
    movements = await InventoryService(db).list_movements(order_item_id=item.id)
    assert all(m.movement_type == StockMovementType.ORDER_RESERVATION.value for m in movements)
    deducted = {m.inventory_item_id: -m.quantity for m in movements}
    assert deducted == {fabric.id: Decimal("6"), thread.id: Decimal("1")}
    assert sorted(d["quantity"] for d in item.stock_deductions) == [1.0, 6.0]
    assert all(d["section"] == "shirt" and d["released"] is False for d in item.stock_deductions)

    packet = await PacketService(db).get_packet_for_item(item.id)
    assert packet.is_partial is False
    assert packet.sections_pending == []
    assert sum(i.required_qty for i in packet.items) == Decimal("7")


async def test_quantity_multiplies_requirements(db, approved_item, kurta_materials):
    order, item = await approved_item(pieces=("Shirt",), quantity=2)

    result = await SectionInventoryService(db).run_inventory_check(item.id)

    assert result.failed_sections == ["shirt"]
    assert result.status == OrderItemStatus.AWAITING_MATERIAL.value
    assert result.packet_id is None
    demand = (await ProcurementService(db).list_demands(order_item_id=item.id))[0]
    assert (demand.required_qty, demand.available_qty, demand.shortage_qty) == (
        Decimal("6"), Decimal("5"), Decimal("1"),
    )


async def test_section_without_bom_lines_waits_without_demands(db, approved_item, kurta_materials):
    order, item = await approved_item(pieces=("Shirt",), add_ons=("Pouch",))

    result = await SectionInventoryService(db).run_inventory_check(item.id)

    assert result.passed_sections == ["shirt"]
    assert result.failed_sections == ["pouch"]
    assert result.demands_created == 0
    assert item.get_section("pouch").status == SectionStatus.AWAITING_MATERIAL.value


async def test_custom_bom_replaces_standard_bom(db, approved_item, kurta_materials):
    fabric, lace = kurta_materials
    order, item = await approved_item(
        pieces=("Shirt",),
        custom_bom=[{"inventory_item_id": str(fabric.id), "quantity": "1.5", "piece": "SHIRT", "unit": "Meter"}],
    )

    result = await SectionInventoryService(db).run_inventory_check(item.id)

    assert result.passed_sections == ["shirt"]
    assert await InventoryService(db).get_stock(fabric.id) == Decimal("3.5")


async def test_size_specific_bom_with_generic_fallback(db, approved_item, make_material, add_bom_line):
    fabric = await make_material("FAB-COTTON", 10)
    await add_bom_line(fabric, "Shirt", 3)
    await add_bom_line(fabric, "Shirt", 4, size="L")
    _, large = await approved_item(pieces=("Shirt",), size="L")
    _, medium = await approved_item(pieces=("Shirt",), size="M")
    service = SectionInventoryService(db)

    await service.run_inventory_check(large.id)
    assert await InventoryService(db).get_stock(fabric.id) == Decimal("6")
    await service.run_inventory_check(medium.id)
    assert await InventoryService(db).get_stock(fabric.id) == Decimal("3")


async def test_unknown_material_in_bom_is_rejected(db, approved_item, make_material):
    order, item = await approved_item(
        pieces=("Shirt",),
        custom_bom=[{"inventory_item_id": str(uuid.uuid4()), "quantity": "1", "piece": "Shirt"}],
    )

    with pytest.raises(ValidationError):
        await SectionInventoryService(db).run_inventory_check(item.id)
    assert item.get_section("shirt").status == SectionStatus.PENDING_INVENTORY_CHECK.value


async def test_malformed_custom_bom_id_is_rejected(db, approved_item, kurta_materials):
    order, item = await approved_item(pieces=("Shirt",))
    item.custom_bom = [{"inventory_item_id": "not-a-uuid", "quantity": "1", "piece": "Shirt"}]

    with pytest.raises(ValidationError) as exc:
        await SectionInventoryService(db).run_inventory_check(item.id)
    assert exc.value.details["inventory_item_id"] == "not-a-uuid"
    assert item.get_section("shirt").status == SectionStatus.PENDING_INVENTORY_CHECK.value


async def test_check_requires_approved_form(db, make_order, kurta_materials):
    order = await make_order()

    with pytest.raises(InvalidStateError):
        await SectionInventoryService(db).run_inventory_check(order.items[0].id)


async def test_check_on_missing_item(db):
    with pytest.raises(NotFoundError):
        await SectionInventoryService(db).run_inventory_check(uuid.uuid4())
