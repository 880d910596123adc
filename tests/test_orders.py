import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.models.order import OrderItemStatus, OrderStatus, PaymentStatus, SectionStatus
from stitchflow.schemas.order import OrderCreate, OrderItemCreate, PaymentCreate, PieceEntry
from stitchflow.services.order_service import OrderService, compute_payment_status
from stitchflow.services.timeline_service import TimelineService


@pytest.mark.parametrize("total,received,expected", [
    ("1000", "0", PaymentStatus.PENDING),
    ("1000", "999.99", PaymentStatus.PENDING),
    ("1000", "1000", PaymentStatus.PAID),
    ("1000", "1000.01", PaymentStatus.EXTRA_PAID),
    ("0", "0", PaymentStatus.PENDING),
])
def test_compute_payment_status(total, received, expected):
    assert compute_payment_status(Decimal(total), Decimal(received)) == expected.value


async def test_create_order_builds_sections(db, make_order):
    order = await make_order(pieces=("Shirt", "Trouser", "shirt"), add_ons=("Pouch",), quantity=2)

    item = order.items[0]
    assert order.status == OrderStatus.RECEIVED.value
    assert order.payment_status == PaymentStatus.PENDING.value
    assert item.status == OrderItemStatus.RECEIVED.value
    assert item.quantity == 2
    assert [(s.section_key, s.display_name) for s in item.sections] == [
        ("shirt", "Shirt"), ("trouser", "Trouser"), ("pouch", "Pouch"),
    ]
    assert {s.status for s in item.sections} == {SectionStatus.PENDING_INVENTORY_CHECK.value}


async def test_order_numbers_are_sequential_per_day(db, make_order):
    first = await make_order()
    second = await make_order()

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    assert first.order_number == f"ORD-{today}-0001"
    assert second.order_number == f"ORD-{today}-0002"


async def test_item_without_pieces_is_rejected(db):
    data = OrderCreate(customer_name="Sana Malik", items=[OrderItemCreate(product_id="KURTA-01")])

    with pytest.raises(ValidationError):
        await OrderService(db).create_order(data)


async def test_add_order_item(db, make_order):
    order = await make_order()

    item = await OrderService(db).add_order_item(order.id, OrderItemCreate(
        product_id="SHARARA-02", included_items=[PieceEntry(piece="Sharara"), PieceEntry(piece="Choli")],
    ))

    assert len(order.items) == 2
    assert [s.section_key for s in item.sections] == ["sharara", "choli"]


async def test_add_order_item_rejected_after_client_stage(db, make_order):
    order = await make_order()
    order.status = OrderStatus.CANCELLED_BY_CLIENT.value

    with pytest.raises(InvalidStateError):
        await OrderService(db).add_order_item(order.id, OrderItemCreate(
            product_id="KURTA-01", included_items=[PieceEntry(piece="Shirt")],
        ))


async def test_list_orders_filters(db, make_order):
    first = await make_order()
    await make_order()
    await OrderService(db).approve_form(first.items[0].id)
    await db.flush()

    orders = OrderService(db)
    assert len(await orders.list_orders()) == 2
    in_progress = await orders.list_orders(status=OrderStatus.IN_PROGRESS.value)
    assert [o.id for o in in_progress] == [first.id]
    assert len(await orders.list_orders(search="ayesha")) == 2
    assert [o.id for o in await orders.list_orders(search=first.order_number)] == [first.id]
    assert await orders.list_orders(search="nobody") == []


async def test_approve_form(db, make_order):
    order = await make_order()
    item = order.items[0]

    await OrderService(db).approve_form(item.id, approved_by="Sales Rida")

    assert item.form_approved is True
    assert item.form_approved_by == "Sales Rida"
    assert item.status == OrderItemStatus.INVENTORY_CHECK.value
    assert order.status == OrderStatus.IN_PROGRESS.value
    with pytest.raises(InvalidStateError):
        await OrderService(db).approve_form(item.id)


async def test_unknown_order_and_item(db):
    with pytest.raises(NotFoundError):
        await OrderService(db).get_order(uuid.uuid4())
    with pytest.raises(NotFoundError):
        await OrderService(db).approve_form(uuid.uuid4())


async def test_payments_update_status(db, make_order):
    order = await make_order(total_amount="5000")
    orders = OrderService(db)

    await orders.record_payment(order.id, PaymentCreate(amount=Decimal("2000"), receipt_ref="RCPT-1"))
    assert order.total_received == Decimal("2000")
    assert order.remaining_amount == Decimal("3000")
    assert order.payment_status == PaymentStatus.PENDING.value

    await orders.record_payment(order.id, PaymentCreate(amount=Decimal("3500")))
    assert order.payment_status == PaymentStatus.EXTRA_PAID.value
    assert order.remaining_amount == Decimal("0")

    extra = order.payments[-1]
    await orders.delete_payment(order.id, extra.id)
    assert order.total_received == Decimal("2000")
    assert order.payment_status == PaymentStatus.PENDING.value

    with pytest.raises(NotFoundError):
        await orders.delete_payment(order.id, uuid.uuid4())


async def test_timeline_records_order_events(db, make_order):
    order = await make_order()
    item = order.items[0]
    await OrderService(db).approve_form(item.id, approved_by="Sales Rida")

    order_actions = {e.action for e in await TimelineService(db).get_order_timeline(order.id)}
    assert {"ORDER_CREATED", "FORM_APPROVED"} <= order_actions

    item_entries = await TimelineService(db).get_item_timeline(item.id)
    assert [(e.action, e.performed_by) for e in item_entries] == [("FORM_APPROVED", "Sales Rida")]
