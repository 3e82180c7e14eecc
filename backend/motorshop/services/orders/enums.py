"""Order status, priority and item enums for the repair-order lifecycle.

This module defines the closed set of order statuses with the transition
table that governs them, plus the priority and item-type enums. Status and
priority values are persisted verbatim and appear in audit history, so
they must not change.
"""

from enum import Enum
from typing import Dict, Set, Tuple


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Two families share the enum: the intake/review flow used by new
    orders (Received through Ready for Work) and the general flow that
    carries an order through shop work, delivery and payment.
    """

    RECEIVED = "Received"
    AWAITING_REVIEW = "Awaiting Review"
    REVIEWED = "Reviewed"
    AWAITING_CUSTOMER_APPROVAL = "Awaiting Customer Approval"
    READY_FOR_WORK = "Ready for Work"
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    READY_FOR_DELIVERY = "Ready for Delivery"
    DELIVERED = "Delivered"
    PAID = "Paid"
    RETURNED = "Returned"
    NOT_PAID = "Not Paid"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert a stored value or member name to OrderStatus.

        Matching is case-insensitive, so "in progress", "In Progress" and
        "IN_PROGRESS" all resolve to ``OrderStatus.IN_PROGRESS``.

        Raises:
            ValueError: If value is not a valid status
        """
        normalized = value.strip().lower()
        for status in cls:
            if normalized in (status.value.lower(), status.name.lower()):
                return status
        valid_values = ", ".join(s.value for s in cls)
        raise ValueError(
            f"Invalid order status: {value}. Valid values are: {valid_values}"
        )

    def is_terminal(self) -> bool:
        """Check if no transition leaves this status."""
        return not ORDER_STATUS_TRANSITIONS[self]

    def is_intake(self) -> bool:
        """Check if status belongs to the intake/review family."""
        return self in {
            OrderStatus.RECEIVED,
            OrderStatus.AWAITING_REVIEW,
            OrderStatus.REVIEWED,
            OrderStatus.AWAITING_CUSTOMER_APPROVAL,
            OrderStatus.READY_FOR_WORK,
        }


class OrderPriority(str, Enum):
    """Order priority."""

    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"


class OrderItemType(str, Enum):
    """Physical engine part brought in with an order."""

    CYLINDER_HEAD = "cylinder_head"
    ENGINE_BLOCK = "engine_block"
    CRANKSHAFT = "crankshaft"
    CONNECTING_RODS = "connecting_rods"
    OTHERS = "others"

    def components(self) -> Tuple[str, ...]:
        """Component names that may be checked in with this item."""
        return ITEM_TYPE_COMPONENTS[self]

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


ITEM_TYPE_COMPONENTS: Dict[OrderItemType, Tuple[str, ...]] = {
    OrderItemType.CYLINDER_HEAD: (
        "camshaft_covers",
        "bolts",
        "rocker_arm_shaft",
        "wedges",
        "springs",
        "shims",
        "valves",
        "guides",
    ),
    OrderItemType.ENGINE_BLOCK: (
        "bearing_caps",
        "cap_bolts",
        "camshaft",
        "guides",
        "bearings",
        "camshaft_key",
        "camshaft_gear",
    ),
    OrderItemType.CRANKSHAFT: (
        "iron_gear",
        "bronze_gear",
        "lock",
        "key",
        "flywheel",
        "bolt",
        "deflector",
    ),
    OrderItemType.CONNECTING_RODS: (
        "bolts",
        "nuts",
        "pistons",
        "locks",
        "bearings",
    ),
    OrderItemType.OTHERS: (
        "water_pump",
        "oil_pump",
        "oil_pan",
        "windage_tray",
        "intake_manifold",
        "exhaust_manifold",
        "timing_covers",
    ),
}


# State transition validation rules
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.RECEIVED: {
        OrderStatus.AWAITING_REVIEW,
        OrderStatus.CANCELLED,
    },
    OrderStatus.AWAITING_REVIEW: {
        OrderStatus.REVIEWED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.REVIEWED: {
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CANCELLED,
    },
    OrderStatus.AWAITING_CUSTOMER_APPROVAL: {
        OrderStatus.READY_FOR_WORK,
        OrderStatus.CANCELLED,
    },
    OrderStatus.READY_FOR_WORK: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
    },
    OrderStatus.OPEN: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
        OrderStatus.ON_HOLD,
    },
    OrderStatus.IN_PROGRESS: {
        OrderStatus.READY_FOR_DELIVERY,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.ON_HOLD,
    },
    OrderStatus.ON_HOLD: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
    },
    OrderStatus.READY_FOR_DELIVERY: {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: {
        OrderStatus.PAID,
        OrderStatus.RETURNED,
        OrderStatus.NOT_PAID,
    },
    OrderStatus.PAID: set(),  # Terminal
    OrderStatus.RETURNED: {
        OrderStatus.CANCELLED,
    },
    OrderStatus.NOT_PAID: {
        OrderStatus.PAID,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.COMPLETED: set(),  # Terminal
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(
    current: OrderStatus
) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status.

    Args:
        current: Current order status

    Returns:
        Set of allowed next statuses
    """
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()
