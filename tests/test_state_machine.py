import uuid

import pytest

from stitchflow.core.events import section_events
from stitchflow.core.exceptions import InvalidStateError
from stitchflow.models.order import (
    Order,
    OrderItem,
    OrderItemSection,
    OrderItemStatus,
    OrderStatus,
    SectionStatus,
)
from stitchflow.models.packet import PacketStatus
from stitchflow.models.procurement import DemandStatus
from stitchflow.services.state_machine import (
    DEMAND_TRANSITIONS,
    PACKET_TRANSITIONS,
    derive_order_item_status,
    refresh_order_item_status,
    transition_order,
    transition_order_item,
    transition_section,
    validate_simple_transition,
)


def _item(*statuses, item_status=OrderItemStatus.INVENTORY_CHECK.value):
    sections = [
        OrderItemSection(section_key=f"piece{i}", display_name=f"Piece {i}", position=i, status=s.value)
        for i, s in enumerate(statuses)
    ]
    return OrderItem(id=uuid.uuid4(), order_id=uuid.uuid4(), product_id="KURTA-01",
                     status=item_status, sections=sections)


class TestSectionTransitions:
    def test_passed_check_moves_forward(self):
        item = _item(SectionStatus.PENDING_INVENTORY_CHECK)
        section = item.sections[0]

        assert transition_section(item, section, SectionStatus.INVENTORY_PASSED) is True
        assert section.status == SectionStatus.INVENTORY_PASSED.value
        assert section.status_updated_at is not None

    def test_skipping_the_packet_is_rejected(self):
        item = _item(SectionStatus.PENDING_INVENTORY_CHECK)

        with pytest.raises(InvalidStateError) as exc:
            transition_section(item, item.sections[0], SectionStatus.READY_FOR_PRODUCTION)
        assert exc.value.details["current_status"] == SectionStatus.PENDING_INVENTORY_CHECK.value
        assert item.sections[0].status == SectionStatus.PENDING_INVENTORY_CHECK.value

    def test_client_approved_is_terminal(self):
        item = _item(SectionStatus.CLIENT_APPROVED)

        with pytest.raises(InvalidStateError):
            transition_section(item, item.sections[0], SectionStatus.READY_FOR_PRODUCTION)

    def test_force_bypasses_table(self):
        item = _item(SectionStatus.CLIENT_APPROVED)

        transition_section(item, item.sections[0], SectionStatus.READY_FOR_PRODUCTION, force=True)
        assert item.sections[0].status == SectionStatus.READY_FOR_PRODUCTION.value

    def test_same_status_is_a_no_op(self):
        item = _item(SectionStatus.AWAITING_MATERIAL)

        assert transition_section(item, item.sections[0], SectionStatus.AWAITING_MATERIAL) is False

    def test_dyeing_rejection_returns_to_inventory_check(self):
        item = _item(SectionStatus.DYEING_IN_PROGRESS)

        transition_section(item, item.sections[0], SectionStatus.PENDING_INVENTORY_CHECK)
        assert item.sections[0].status == SectionStatus.PENDING_INVENTORY_CHECK.value

    def test_ready_statuses_publish_events(self):
        received = []
        section_events.subscribe(SectionStatus.READY_FOR_PRODUCTION.value, received.append)
        item = _item(SectionStatus.PACKET_VERIFIED, SectionStatus.PACKET_CREATED)

        transition_section(item, item.sections[0], SectionStatus.READY_FOR_PRODUCTION)
        transition_section(item, item.sections[1], SectionStatus.PACKET_VERIFIED)

        assert len(received) == 1
        event = received[0]
        assert event.order_item_id == item.id
        assert event.section == "piece0"
        assert event.from_status == SectionStatus.PACKET_VERIFIED.value
        assert event.event_type == SectionStatus.READY_FOR_PRODUCTION.value

    def test_unsubscribed_handler_is_not_called(self):
        received = []
        section_events.subscribe(SectionStatus.READY_FOR_DYEING.value, received.append)
        section_events.unsubscribe(SectionStatus.READY_FOR_DYEING.value, received.append)
        item = _item(SectionStatus.PRODUCTION_COMPLETED)

        transition_section(item, item.sections[0], SectionStatus.READY_FOR_DYEING)
        assert received == []


class TestDeriveOrderItemStatus:
    @pytest.mark.parametrize("statuses,expected", [
        ((SectionStatus.PENDING_INVENTORY_CHECK,), OrderItemStatus.INVENTORY_CHECK),
        ((SectionStatus.AWAITING_MATERIAL,), OrderItemStatus.AWAITING_MATERIAL),
        ((SectionStatus.AWAITING_MATERIAL, SectionStatus.PENDING_INVENTORY_CHECK), OrderItemStatus.AWAITING_MATERIAL),
        ((SectionStatus.INVENTORY_PASSED, SectionStatus.AWAITING_MATERIAL), OrderItemStatus.PARTIAL_CREATE_PACKET),
        ((SectionStatus.INVENTORY_PASSED, SectionStatus.INVENTORY_PASSED), OrderItemStatus.CREATE_PACKET),
        ((SectionStatus.PACKET_CREATED, SectionStatus.READY_FOR_PRODUCTION), OrderItemStatus.PACKET_CHECK),
        ((SectionStatus.READY_FOR_PRODUCTION, SectionStatus.AWAITING_MATERIAL), OrderItemStatus.PARTIAL_IN_PRODUCTION),
        ((SectionStatus.READY_FOR_PRODUCTION,), OrderItemStatus.READY_FOR_PRODUCTION),
        ((SectionStatus.IN_PRODUCTION, SectionStatus.READY_FOR_PRODUCTION), OrderItemStatus.IN_PRODUCTION),
        ((SectionStatus.PRODUCTION_COMPLETED,), OrderItemStatus.PRODUCTION_COMPLETED),
        ((SectionStatus.READY_FOR_DYEING,), OrderItemStatus.READY_FOR_DYEING),
        ((SectionStatus.DYEING_ACCEPTED, SectionStatus.DYEING_COMPLETED), OrderItemStatus.IN_DYEING),
        ((SectionStatus.DYEING_IN_PROGRESS, SectionStatus.PRODUCTION_COMPLETED), OrderItemStatus.PARTIALLY_IN_DYEING),
        ((SectionStatus.DYEING_COMPLETED, SectionStatus.PENDING_INVENTORY_CHECK), OrderItemStatus.PARTIALLY_IN_DYEING),
        ((SectionStatus.DYEING_COMPLETED,), OrderItemStatus.DYEING_COMPLETED),
        ((SectionStatus.QA_PENDING, SectionStatus.DYEING_COMPLETED), OrderItemStatus.QUALITY_ASSURANCE),
        ((SectionStatus.READY_FOR_CLIENT_APPROVAL,), OrderItemStatus.READY_FOR_CLIENT_APPROVAL),
        ((SectionStatus.AWAITING_CLIENT_APPROVAL, SectionStatus.CLIENT_APPROVED), OrderItemStatus.AWAITING_CLIENT_APPROVAL),
        ((SectionStatus.CLIENT_APPROVED, SectionStatus.CLIENT_APPROVED), OrderItemStatus.CLIENT_APPROVED),
    ])
    def test_aggregation(self, statuses, expected):
        item = _item(*statuses)
        assert derive_order_item_status(item.sections, item.status) == expected.value

    def test_no_sections_keeps_current_status(self):
        assert derive_order_item_status([], OrderItemStatus.RECEIVED.value) == OrderItemStatus.RECEIVED.value

    def test_altered_piece_back_in_production(self):
        item = _item(
            SectionStatus.READY_FOR_PRODUCTION, SectionStatus.AWAITING_CLIENT_APPROVAL,
            item_status=OrderItemStatus.ALTERATION_REQUIRED.value,
        )
        # Still in production for the altered piece
        assert derive_order_item_status(item.sections, item.status) == OrderItemStatus.IN_PRODUCTION.value

    def test_refresh_applies_derived_status(self):
        item = _item(SectionStatus.INVENTORY_PASSED, SectionStatus.AWAITING_MATERIAL)

        assert refresh_order_item_status(item) == OrderItemStatus.PARTIAL_CREATE_PACKET.value
        assert item.status == OrderItemStatus.PARTIAL_CREATE_PACKET.value


class TestOrderAndItemTransitions:
    def test_received_item_cannot_skip_inventory_check(self):
        item = _item(SectionStatus.PENDING_INVENTORY_CHECK, item_status=OrderItemStatus.RECEIVED.value)

        with pytest.raises(InvalidStateError):
            transition_order_item(item, OrderItemStatus.CREATE_PACKET)

    def test_cancelled_item_is_terminal(self):
        item = _item(SectionStatus.PENDING_INVENTORY_CHECK, item_status=OrderItemStatus.CANCELLED_BY_CLIENT.value)

        with pytest.raises(InvalidStateError):
            transition_order_item(item, OrderItemStatus.INVENTORY_CHECK)

    def test_only_client_approved_items_become_dispatchable(self):
        approved = _item(SectionStatus.CLIENT_APPROVED, item_status=OrderItemStatus.CLIENT_APPROVED.value)
        in_production = _item(SectionStatus.IN_PRODUCTION, item_status=OrderItemStatus.IN_PRODUCTION.value)

        transition_order_item(approved, OrderItemStatus.READY_FOR_DISPATCH)
        assert approved.status == OrderItemStatus.READY_FOR_DISPATCH.value
        with pytest.raises(InvalidStateError):
            transition_order_item(in_production, OrderItemStatus.READY_FOR_DISPATCH)

    def test_order_follows_approval_gate(self):
        order = Order(order_number="ORD-20260101-0001", status=OrderStatus.AWAITING_CLIENT_APPROVAL.value)

        transition_order(order, OrderStatus.AWAITING_ACCOUNT_APPROVAL)
        with pytest.raises(InvalidStateError):
            transition_order(order, OrderStatus.AWAITING_CLIENT_APPROVAL)
        transition_order(order, OrderStatus.READY_FOR_DISPATCH)
        assert order.status == OrderStatus.READY_FOR_DISPATCH.value

    def test_terminal_order_message(self):
        order = Order(order_number="ORD-20260101-0002", status=OrderStatus.CANCELLED_BY_CLIENT.value)

        with pytest.raises(InvalidStateError, match="terminal state"):
            transition_order(order, OrderStatus.IN_PROGRESS)


class TestSimpleTransitions:
    def test_demand_can_be_received_without_ordering(self):
        assert validate_simple_transition(
            DEMAND_TRANSITIONS, "Demand", "PD-1", DemandStatus.OPEN.value, DemandStatus.RECEIVED,
        ) == DemandStatus.RECEIVED.value

    def test_fulfilled_demand_is_terminal(self):
        with pytest.raises(InvalidStateError):
            validate_simple_transition(
                DEMAND_TRANSITIONS, "Demand", "PD-1", DemandStatus.FULFILLED.value, DemandStatus.OPEN,
            )

    def test_approved_packet_reopens_for_a_new_round(self):
        assert validate_simple_transition(
            PACKET_TRANSITIONS, "Packet", "PKT-1", PacketStatus.APPROVED.value, PacketStatus.PENDING,
        ) == PacketStatus.PENDING.value

    def test_packet_cannot_be_approved_before_completion(self):
        with pytest.raises(InvalidStateError):
            validate_simple_transition(
                PACKET_TRANSITIONS, "Packet", "PKT-1", PacketStatus.IN_PROGRESS.value, PacketStatus.APPROVED,
            )
