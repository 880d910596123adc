"""
Fulfillment State Machines

This module is the SINGLE SOURCE OF TRUTH for section, order item, order,
packet and procurement demand status transitions. Services never assign a
status column directly; they go through the helpers below.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List

from stitchflow.core.enum_utils import get_enum_value
from stitchflow.core.events import SectionStatusChanged, section_events
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


# =============================================================================
# SECTION TRANSITIONS
# =============================================================================


SECTION_TRANSITIONS: Dict[str, List[str]] = {
    SectionStatus.PENDING_INVENTORY_CHECK: [
        SectionStatus.INVENTORY_PASSED,         # Check passed, stock deducted
        SectionStatus.AWAITING_MATERIAL,        # Shortage, demands raised
    ],
    SectionStatus.AWAITING_MATERIAL: [
        SectionStatus.INVENTORY_PASSED,         # Rerun passed
        SectionStatus.AWAITING_MATERIAL,        # Rerun still short
        SectionStatus.PENDING_INVENTORY_CHECK,  # Rejected back from dyeing while waiting
    ],
    SectionStatus.INVENTORY_PASSED: [
        SectionStatus.PACKET_CREATED,           # Picked and packet completed
    ],
    SectionStatus.PACKET_CREATED: [
        SectionStatus.PACKET_VERIFIED,          # Packet approved
        SectionStatus.INVENTORY_PASSED,         # Packet rejected, re-pick
    ],
    SectionStatus.PACKET_VERIFIED: [
        SectionStatus.READY_FOR_PRODUCTION,
    ],
    SectionStatus.READY_FOR_PRODUCTION: [
        SectionStatus.IN_PRODUCTION,
    ],
    SectionStatus.IN_PRODUCTION: [
        SectionStatus.PRODUCTION_COMPLETED,
    ],
    SectionStatus.PRODUCTION_COMPLETED: [
        SectionStatus.READY_FOR_DYEING,         # Section needs dyeing
        SectionStatus.QA_PENDING,               # Straight to QA
    ],
    SectionStatus.READY_FOR_DYEING: [
        SectionStatus.DYEING_ACCEPTED,
        SectionStatus.PENDING_INVENTORY_CHECK,  # Dyeing rejected, material re-check
    ],
    SectionStatus.DYEING_ACCEPTED: [
        SectionStatus.DYEING_IN_PROGRESS,
        SectionStatus.PENDING_INVENTORY_CHECK,
    ],
    SectionStatus.DYEING_IN_PROGRESS: [
        SectionStatus.DYEING_COMPLETED,
        SectionStatus.PENDING_INVENTORY_CHECK,
    ],
    SectionStatus.DYEING_COMPLETED: [
        SectionStatus.QA_PENDING,
    ],
    SectionStatus.QA_PENDING: [
        SectionStatus.READY_FOR_CLIENT_APPROVAL,
    ],
    SectionStatus.READY_FOR_CLIENT_APPROVAL: [
        SectionStatus.AWAITING_CLIENT_APPROVAL,
    ],
    SectionStatus.AWAITING_CLIENT_APPROVAL: [
        SectionStatus.CLIENT_APPROVED,
        SectionStatus.READY_FOR_PRODUCTION,     # Alteration requested
    ],
    SectionStatus.CLIENT_APPROVED: [],          # Terminal state
}
SECTION_TRANSITIONS = {get_enum_value(k): [get_enum_value(v) for v in vs] for k, vs in SECTION_TRANSITIONS.items()}

# Statuses other workflows subscribe to
EVENT_STATUSES = {
    SectionStatus.READY_FOR_PRODUCTION.value,
    SectionStatus.READY_FOR_DYEING.value,
    SectionStatus.READY_FOR_CLIENT_APPROVAL.value,
}

# Sections that have not yet passed a material check
BLOCKED_SECTION_STATUSES = {SectionStatus.PENDING_INVENTORY_CHECK.value, SectionStatus.AWAITING_MATERIAL.value}

# Sections already past the packet stage
BEYOND_PACKET_STATUSES = {
    SectionStatus.READY_FOR_PRODUCTION.value, SectionStatus.IN_PRODUCTION.value, SectionStatus.PRODUCTION_COMPLETED.value,
    SectionStatus.READY_FOR_DYEING.value, SectionStatus.DYEING_ACCEPTED.value, SectionStatus.DYEING_IN_PROGRESS.value,
    SectionStatus.DYEING_COMPLETED.value, SectionStatus.QA_PENDING.value, SectionStatus.READY_FOR_CLIENT_APPROVAL.value,
    SectionStatus.AWAITING_CLIENT_APPROVAL.value, SectionStatus.CLIENT_APPROVED.value,
}


def can_transition_section(current_status: str, new_status: str) -> bool:
    """Check if a section transition is allowed."""
    return get_enum_value(new_status) in SECTION_TRANSITIONS.get(get_enum_value(current_status), [])


def validate_section_transition(section_key: str, current_status: str, new_status: str) -> None:
    """Raise InvalidStateError if the section cannot move to new_status."""
    current_status = get_enum_value(current_status)
    new_status = get_enum_value(new_status)
    if current_status == new_status:
        return
    if not can_transition_section(current_status, new_status):
        allowed = SECTION_TRANSITIONS.get(current_status, [])
        raise InvalidStateError(
            f"Section '{section_key}' cannot move from '{current_status}' to '{new_status}'",
            details={"section": section_key, "current_status": current_status, "allowed": allowed},
        )


def transition_section(
    order_item: OrderItem,
    section: OrderItemSection,
    new_status,
    force: bool = False,
) -> bool:
    """
    Move a section to new_status.

    ``force`` bypasses the transition table; it is reserved for alteration
    requests and full resets. Returns False when the status was unchanged.
    """
    new_status = get_enum_value(new_status)
    previous = section.status
    if previous == new_status:
        return False
    if not force:
        validate_section_transition(section.section_key, previous, new_status)

    section.status = new_status
    section.status_updated_at = datetime.now(timezone.utc)

    if new_status in EVENT_STATUSES:
        section_events.publish(SectionStatusChanged(
            order_id=order_item.order_id,
            order_item_id=order_item.id,
            section=section.section_key,
            from_status=previous,
            to_status=new_status,
        ))
    return True


# =============================================================================
# ORDER ITEM TRANSITIONS
# =============================================================================


# Lifecycle boundaries are guarded; in-flight statuses are derived from the
# sections and may move freely among themselves.
ITEM_IN_FLIGHT_STATUSES = [
    OrderItemStatus.INVENTORY_CHECK, OrderItemStatus.AWAITING_MATERIAL, OrderItemStatus.PARTIAL_CREATE_PACKET, OrderItemStatus.CREATE_PACKET,
    OrderItemStatus.PACKET_CHECK, OrderItemStatus.READY_FOR_PRODUCTION, OrderItemStatus.PARTIAL_IN_PRODUCTION, OrderItemStatus.IN_PRODUCTION,
    OrderItemStatus.PRODUCTION_COMPLETED, OrderItemStatus.READY_FOR_DYEING, OrderItemStatus.PARTIALLY_IN_DYEING, OrderItemStatus.IN_DYEING,
    OrderItemStatus.DYEING_COMPLETED, OrderItemStatus.QUALITY_ASSURANCE, OrderItemStatus.READY_FOR_CLIENT_APPROVAL,
    OrderItemStatus.AWAITING_CLIENT_APPROVAL, OrderItemStatus.ALTERATION_REQUIRED, OrderItemStatus.CLIENT_APPROVED,
]

ORDER_ITEM_TRANSITIONS: Dict[str, List[str]] = {
    OrderItemStatus.RECEIVED.value: [OrderItemStatus.INVENTORY_CHECK.value, OrderItemStatus.CANCELLED_BY_CLIENT.value],
    **{
        status.value: [s.value for s in ITEM_IN_FLIGHT_STATUSES] + [OrderItemStatus.CANCELLED_BY_CLIENT.value]
        for status in ITEM_IN_FLIGHT_STATUSES
    },
    OrderItemStatus.READY_FOR_DISPATCH.value: [OrderItemStatus.DISPATCHED.value],
    OrderItemStatus.DISPATCHED.value: [OrderItemStatus.COMPLETED.value],
    OrderItemStatus.COMPLETED.value: [],
    OrderItemStatus.CANCELLED_BY_CLIENT.value: [],
}
ORDER_ITEM_TRANSITIONS[OrderItemStatus.CLIENT_APPROVED.value].append(OrderItemStatus.READY_FOR_DISPATCH.value)


def validate_order_item_transition(current_status: str, new_status: str) -> None:
    current_status = get_enum_value(current_status)
    new_status = get_enum_value(new_status)
    if current_status == new_status:
        return
    allowed = ORDER_ITEM_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise InvalidStateError(
            f"Cannot change order item from '{current_status}' to '{new_status}'",
            details={"current_status": current_status, "allowed": allowed},
        )


def transition_order_item(order_item: OrderItem, new_status) -> None:
    new_status = get_enum_value(new_status)
    validate_order_item_transition(order_item.status, new_status)
    order_item.status = new_status


def derive_order_item_status(sections: Iterable[OrderItemSection], current_status: str) -> str:
    """
    Aggregate section states into the order item status.

    Falls back to ``current_status`` for combinations that carry no stronger
    signal (for example an item flagged ALTERATION_REQUIRED).
    """
    statuses = {s.status for s in sections}
    if not statuses:
        return current_status

    dyeing = {SectionStatus.READY_FOR_DYEING.value, SectionStatus.DYEING_ACCEPTED.value, SectionStatus.DYEING_IN_PROGRESS.value}
    approval = {
        SectionStatus.READY_FOR_CLIENT_APPROVAL.value, SectionStatus.AWAITING_CLIENT_APPROVAL.value, SectionStatus.CLIENT_APPROVED.value,
    }

    if statuses == {SectionStatus.CLIENT_APPROVED.value}:
        return OrderItemStatus.CLIENT_APPROVED.value
    if statuses <= {SectionStatus.AWAITING_CLIENT_APPROVAL.value, SectionStatus.CLIENT_APPROVED.value}:
        return OrderItemStatus.AWAITING_CLIENT_APPROVAL.value
    if statuses <= approval:
        return OrderItemStatus.READY_FOR_CLIENT_APPROVAL.value
    if statuses == {SectionStatus.PENDING_INVENTORY_CHECK.value}:
        return OrderItemStatus.INVENTORY_CHECK.value
    if statuses <= BLOCKED_SECTION_STATUSES:
        return OrderItemStatus.AWAITING_MATERIAL.value

    any_blocked = bool(statuses & BLOCKED_SECTION_STATUSES)
    if SectionStatus.INVENTORY_PASSED.value in statuses:
        return OrderItemStatus.PARTIAL_CREATE_PACKET.value if any_blocked else OrderItemStatus.CREATE_PACKET.value
    if statuses & {SectionStatus.PACKET_CREATED.value, SectionStatus.PACKET_VERIFIED.value}:
        return OrderItemStatus.PACKET_CHECK.value
    if any_blocked:
        if statuses & (dyeing | {SectionStatus.DYEING_COMPLETED.value}):
            return OrderItemStatus.PARTIALLY_IN_DYEING.value
        return OrderItemStatus.PARTIAL_IN_PRODUCTION.value

    if statuses == {SectionStatus.READY_FOR_PRODUCTION.value}:
        return OrderItemStatus.READY_FOR_PRODUCTION.value
    if statuses & {SectionStatus.READY_FOR_PRODUCTION.value, SectionStatus.IN_PRODUCTION.value}:
        return OrderItemStatus.IN_PRODUCTION.value
    if statuses == {SectionStatus.PRODUCTION_COMPLETED.value}:
        return OrderItemStatus.PRODUCTION_COMPLETED.value
    if statuses & dyeing:
        if statuses == {SectionStatus.READY_FOR_DYEING.value}:
            return OrderItemStatus.READY_FOR_DYEING.value
        if statuses <= dyeing | {SectionStatus.DYEING_COMPLETED.value}:
            return OrderItemStatus.IN_DYEING.value
        return OrderItemStatus.PARTIALLY_IN_DYEING.value
    if statuses == {SectionStatus.DYEING_COMPLETED.value}:
        return OrderItemStatus.DYEING_COMPLETED.value
    if statuses & {
        SectionStatus.QA_PENDING.value, SectionStatus.PRODUCTION_COMPLETED.value,
        SectionStatus.DYEING_COMPLETED.value, SectionStatus.READY_FOR_CLIENT_APPROVAL.value,
    }:
        return OrderItemStatus.QUALITY_ASSURANCE.value
    return current_status


def refresh_order_item_status(order_item: OrderItem) -> str:
    """Re-derive and apply the order item status from its sections."""
    derived = derive_order_item_status(order_item.sections, order_item.status)
    transition_order_item(order_item, derived)
    return derived


# =============================================================================
# ORDER TRANSITIONS
# =============================================================================


ORDER_TRANSITIONS: Dict[str, List[str]] = {
    OrderStatus.RECEIVED.value: [OrderStatus.IN_PROGRESS.value, OrderStatus.CANCELLED_BY_CLIENT.value],
    OrderStatus.IN_PROGRESS.value: [OrderStatus.READY_FOR_CLIENT_APPROVAL.value, OrderStatus.CANCELLED_BY_CLIENT.value],
    OrderStatus.INVENTORY_CHECK.value: [
        OrderStatus.IN_PROGRESS.value,                # First check after a reset
        OrderStatus.READY_FOR_CLIENT_APPROVAL.value,
        OrderStatus.CANCELLED_BY_CLIENT.value,
    ],
    OrderStatus.READY_FOR_CLIENT_APPROVAL.value: [
        OrderStatus.AWAITING_CLIENT_APPROVAL.value,   # Sent to client
        OrderStatus.IN_PROGRESS.value,                # Item re-entered production
    ],
    OrderStatus.AWAITING_CLIENT_APPROVAL.value: [
        OrderStatus.AWAITING_ACCOUNT_APPROVAL.value,  # Client approved
        OrderStatus.IN_PROGRESS.value,                # Alteration requested
        OrderStatus.INVENTORY_CHECK.value,            # Start from scratch
        OrderStatus.CANCELLED_BY_CLIENT.value,        # Client rejected
    ],
    OrderStatus.AWAITING_ACCOUNT_APPROVAL.value: [OrderStatus.READY_FOR_DISPATCH.value],
    OrderStatus.READY_FOR_DISPATCH.value: [OrderStatus.DISPATCHED.value],
    OrderStatus.DISPATCHED.value: [],                 # Terminal state
    OrderStatus.CANCELLED_BY_CLIENT.value: [],        # Terminal state
}


def validate_order_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidStateError if the order cannot move to new_status."""
    current_status = get_enum_value(current_status)
    new_status = get_enum_value(new_status)
    if current_status == new_status:
        return
    allowed = ORDER_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        if not allowed:
            raise InvalidStateError(
                f"Order in '{current_status}' status cannot be modified. This is a terminal state.",
                details={"current_status": current_status},
            )
        raise InvalidStateError(
            f"Cannot change order from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            details={"current_status": current_status, "allowed": allowed},
        )


def transition_order(order: Order, new_status) -> None:
    new_status = get_enum_value(new_status)
    validate_order_transition(order.status, new_status)
    order.status = new_status


def require_order_status(order: Order, *statuses) -> None:
    """Guard an operation that is only valid in the given order statuses."""
    expected = [get_enum_value(s) for s in statuses]
    if order.status not in expected:
        raise InvalidStateError(
            f"Order {order.order_number} must be {' or '.join(expected)} (current: {order.status})",
            details={"current_status": order.status, "expected": expected},
        )


# =============================================================================
# PACKET AND DEMAND TRANSITIONS
# =============================================================================


PACKET_TRANSITIONS: Dict[str, List[str]] = {
    PacketStatus.PENDING.value: [PacketStatus.ASSIGNED.value, PacketStatus.INVALIDATED.value],
    PacketStatus.ASSIGNED.value: [
        PacketStatus.ASSIGNED.value,        # Reassign picker
        PacketStatus.IN_PROGRESS.value,
        PacketStatus.PENDING.value,         # New round merged in
        PacketStatus.INVALIDATED.value,
    ],
    PacketStatus.IN_PROGRESS.value: [
        PacketStatus.COMPLETED.value,
        PacketStatus.PENDING.value,
        PacketStatus.INVALIDATED.value,
    ],
    PacketStatus.COMPLETED.value: [
        PacketStatus.APPROVED.value,
        PacketStatus.ASSIGNED.value,        # Rejected, re-pick
        PacketStatus.PENDING.value,
        PacketStatus.INVALIDATED.value,
    ],
    PacketStatus.APPROVED.value: [PacketStatus.PENDING.value, PacketStatus.INVALIDATED.value],
    PacketStatus.INVALIDATED.value: [PacketStatus.PENDING.value],
}


DEMAND_TRANSITIONS: Dict[str, List[str]] = {
    DemandStatus.OPEN.value: [DemandStatus.ORDERED.value, DemandStatus.RECEIVED.value, DemandStatus.CANCELLED.value],
    DemandStatus.ORDERED.value: [DemandStatus.RECEIVED.value, DemandStatus.CANCELLED.value],
    DemandStatus.RECEIVED.value: [DemandStatus.FULFILLED.value, DemandStatus.OPEN.value],
    DemandStatus.FULFILLED.value: [],
    DemandStatus.CANCELLED.value: [],
}


def validate_simple_transition(
    table: Dict[str, List[str]],
    entity: str,
    label: str,
    current_status: str,
    new_status,
) -> str:
    """Validate a packet or demand transition; returns the new status string."""
    new_status = get_enum_value(new_status)
    if current_status == new_status:
        return new_status  # No change, always allowed
    allowed = table.get(current_status, [])
    if new_status not in allowed:
        raise InvalidStateError(
            f"{entity} {label} cannot move from '{current_status}' to '{new_status}'",
            details={"current_status": current_status, "allowed": allowed},
        )
    return new_status
