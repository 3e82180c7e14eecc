"""
Tests for the order status enum, transition table and state machine.
"""

from datetime import datetime, timezone

import pytest

from motorshop.database.models import Order
from motorshop.services.orders.enums import (
    ORDER_STATUS_TRANSITIONS,
    OrderItemType,
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from motorshop.services.orders.errors import (
    InvalidOrderStateError,
    OrderValidationError,
)
from motorshop.services.orders.state_machine import (
    OrderStateMachine,
    describe_transition_error,
    get_order_state_machine,
)

# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def state_machine() -> OrderStateMachine:
    return OrderStateMachine()


def make_order(status: OrderStatus, **kwargs) -> Order:
    """Build a transient order in the given status."""
    return Order(
        id=42,
        customer_id=1,
        title="Test order",
        status=status,
        **kwargs,
    )


FORBIDDEN_EDGES = [
    (current, target)
    for current in OrderStatus
    for target in OrderStatus
    if target not in ORDER_STATUS_TRANSITIONS[current]
]


# ============================================================================
# Enum Tests
# ============================================================================


class TestOrderStatusEnum:
    """Test the status enum and its transition table."""

    def test_has_fifteen_statuses(self) -> None:
        assert len(OrderStatus) == 15

    def test_every_status_has_table_entry(self) -> None:
        assert set(ORDER_STATUS_TRANSITIONS) == set(OrderStatus)

    def test_stored_values(self) -> None:
        assert OrderStatus.AWAITING_REVIEW.value == "Awaiting Review"
        assert OrderStatus.AWAITING_CUSTOMER_APPROVAL.value == "Awaiting Customer Approval"
        assert OrderStatus.NOT_PAID.value == "Not Paid"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("In Progress", OrderStatus.IN_PROGRESS),
            ("in progress", OrderStatus.IN_PROGRESS),
            ("IN_PROGRESS", OrderStatus.IN_PROGRESS),
            (" Ready for Work ", OrderStatus.READY_FOR_WORK),
        ],
    )
    def test_from_string(self, raw: str, expected: OrderStatus) -> None:
        assert OrderStatus.from_string(raw) == expected

    def test_from_string_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Invalid order status"):
            OrderStatus.from_string("Shipped")

    def test_terminal_statuses(self) -> None:
        terminal = {status for status in OrderStatus if status.is_terminal()}
        assert terminal == {
            OrderStatus.PAID,
            OrderStatus.CANCELLED,
            OrderStatus.COMPLETED,
        }

    def test_intake_family(self) -> None:
        assert OrderStatus.RECEIVED.is_intake()
        assert OrderStatus.READY_FOR_WORK.is_intake()
        assert not OrderStatus.OPEN.is_intake()
        assert not OrderStatus.IN_PROGRESS.is_intake()

    def test_allowed_transitions_returns_copy(self) -> None:
        allowed = get_allowed_order_transitions(OrderStatus.DELIVERED)
        allowed.add(OrderStatus.OPEN)

        assert OrderStatus.OPEN not in ORDER_STATUS_TRANSITIONS[OrderStatus.DELIVERED]

    def test_validate_transition(self) -> None:
        assert validate_order_status_transition(OrderStatus.DELIVERED, OrderStatus.NOT_PAID)
        assert not validate_order_status_transition(OrderStatus.PAID, OrderStatus.DELIVERED)

    def test_item_type_components(self) -> None:
        assert "valves" in OrderItemType.CYLINDER_HEAD.components()
        assert OrderItemType.CONNECTING_RODS.components() == (
            "bolts",
            "nuts",
            "pistons",
            "locks",
            "bearings",
        )
        assert OrderItemType.ENGINE_BLOCK.display_name == "Engine Block"


# ============================================================================
# Transition Tests
# ============================================================================


class TestTransitionTable:
    """Every edge outside the table is rejected without touching the order."""

    @pytest.mark.parametrize(
        "current,target",
        FORBIDDEN_EDGES,
        ids=[f"{c.name}->{t.name}" for c, t in FORBIDDEN_EDGES],
    )
    def test_forbidden_edge_rejected(
        self,
        state_machine: OrderStateMachine,
        current: OrderStatus,
        target: OrderStatus,
    ) -> None:
        order = make_order(current, actual_completion=datetime.now(timezone.utc))

        with pytest.raises(InvalidOrderStateError) as exc_info:
            state_machine.apply_transition(order, target, actor_id=7)

        assert order.status == current
        assert order.updated_by is None
        assert exc_info.value.current_status == current
        assert exc_info.value.target_status == target

    @pytest.mark.parametrize(
        "current,target",
        [
            (current, target)
            for current, targets in ORDER_STATUS_TRANSITIONS.items()
            for target in targets
            if target != OrderStatus.COMPLETED
        ],
    )
    def test_allowed_edge_applied(
        self,
        state_machine: OrderStateMachine,
        current: OrderStatus,
        target: OrderStatus,
    ) -> None:
        order = make_order(current)

        previous = state_machine.apply_transition(order, target, actor_id=7)

        assert previous == current
        assert order.status == target
        assert order.updated_by == 7

    def test_system_transition_keeps_updater(self, state_machine: OrderStateMachine) -> None:
        order = make_order(OrderStatus.OPEN, updated_by=3)

        state_machine.apply_transition(order, OrderStatus.IN_PROGRESS)

        assert order.updated_by == 3

    def test_error_lists_allowed_transitions(self, state_machine: OrderStateMachine) -> None:
        order = make_order(OrderStatus.DELIVERED)

        with pytest.raises(InvalidOrderStateError) as exc_info:
            state_machine.apply_transition(order, OrderStatus.OPEN)

        details = describe_transition_error(exc_info.value)
        assert details["current_status"] == "Delivered"
        assert details["target_status"] == "Open"
        assert details["allowed_transitions"] == ["Not Paid", "Paid", "Returned"]


class TestCompletionGuard:
    """Completing an order requires an actual completion time."""

    def test_completion_without_timestamp_rejected(
        self, state_machine: OrderStateMachine
    ) -> None:
        order = make_order(OrderStatus.IN_PROGRESS)

        with pytest.raises(OrderValidationError, match="actual completion"):
            state_machine.apply_transition(order, OrderStatus.COMPLETED)

        assert order.status == OrderStatus.IN_PROGRESS

    def test_completion_with_timestamp(self, state_machine: OrderStateMachine) -> None:
        order = make_order(
            OrderStatus.IN_PROGRESS,
            actual_completion=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
        )

        state_machine.apply_transition(order, OrderStatus.COMPLETED)

        assert order.status == OrderStatus.COMPLETED

    def test_table_checked_before_guard(self, state_machine: OrderStateMachine) -> None:
        order = make_order(OrderStatus.OPEN)

        with pytest.raises(InvalidOrderStateError):
            state_machine.apply_transition(order, OrderStatus.COMPLETED)


class TestPreconditionsAndFollowUps:
    """Test status preconditions and automatic hops."""

    def test_ensure_status_message(self, state_machine: OrderStateMachine) -> None:
        order = make_order(OrderStatus.DELIVERED)

        with pytest.raises(InvalidOrderStateError) as exc_info:
            state_machine.ensure_status(
                order, [OrderStatus.IN_PROGRESS, OrderStatus.READY_FOR_WORK]
            )

        assert str(exc_info.value) == (
            "Order must be in status [In Progress, Ready for Work] but is in [Delivered]."
        )
        assert exc_info.value.expected_statuses == (
            OrderStatus.IN_PROGRESS,
            OrderStatus.READY_FOR_WORK,
        )

    def test_ensure_status_accepts_expected(self, state_machine: OrderStateMachine) -> None:
        order = make_order(OrderStatus.AWAITING_REVIEW)

        state_machine.ensure_status(order, [OrderStatus.AWAITING_REVIEW])

    def test_reviewed_advances_to_customer_approval(
        self, state_machine: OrderStateMachine
    ) -> None:
        assert (
            state_machine.follow_up_status(OrderStatus.REVIEWED)
            == OrderStatus.AWAITING_CUSTOMER_APPROVAL
        )

    def test_other_statuses_have_no_follow_up(self, state_machine: OrderStateMachine) -> None:
        for status in OrderStatus:
            if status != OrderStatus.REVIEWED:
                assert state_machine.follow_up_status(status) is None

    def test_shared_instance(self) -> None:
        assert get_order_state_machine() is get_order_state_machine()
