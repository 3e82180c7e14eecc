"""Order state machine with transition validation, guards and follow-ups.

The transition table in ``enums`` is the single source of truth for which
status changes are legal. The state machine adds the rules that depend on
order data (the completion guard) and the automatic follow-up hops that
the orchestrator applies right after a transition.
"""

from typing import Any, Callable, Dict, Iterable, Optional

from motorshop.core.logging import get_logger
from motorshop.database.models import Order
from motorshop.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from motorshop.services.orders.errors import (
    InvalidOrderStateError,
    OrderValidationError,
)

logger = get_logger(__name__)


def format_statuses(statuses: Iterable[OrderStatus]) -> str:
    return ", ".join(status.value for status in statuses)


class OrderStateMachine:
    """State machine for repair order status changes.

    Transitions are applied in memory on a loaded Order; persisting them
    is up to the caller's transaction.
    """

    def __init__(self) -> None:
        self._transition_guards: Dict[
            OrderStatus, Callable[[Order], None]
        ] = {
            OrderStatus.COMPLETED: self._guard_completion,
        }
        self._follow_ups: Dict[OrderStatus, OrderStatus] = {
            OrderStatus.REVIEWED: OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        }

    def ensure_status(
        self,
        order: Order,
        expected: Iterable[OrderStatus],
    ) -> None:
        """Check that the order is in one of the expected statuses.

        Raises:
            InvalidOrderStateError: If the current status is not expected
        """
        expected = tuple(expected)
        if order.status in expected:
            return

        raise InvalidOrderStateError(
            f"Order must be in status [{format_statuses(expected)}] "
            f"but is in [{order.status.value}].",
            current_status=order.status,
            expected_statuses=expected,
            order_id=order.id,
        )

    def validate_transition(self, order: Order, target_status: OrderStatus) -> None:
        """Validate a transition against the table and its guard.

        Raises:
            InvalidOrderStateError: If the edge is not in the table
            OrderValidationError: If the target's guard rejects the order
        """
        current_status = order.status

        if not validate_order_status_transition(current_status, target_status):
            allowed = sorted(
                get_allowed_order_transitions(current_status),
                key=lambda status: status.value,
            )
            raise InvalidOrderStateError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_status=current_status,
                target_status=target_status,
                order_id=order.id,
                allowed_transitions=[status.value for status in allowed],
            )

        guard = self._transition_guards.get(target_status)
        if guard is not None:
            guard(order)

    def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        actor_id: Optional[int] = None,
    ) -> OrderStatus:
        """Validate and apply a transition.

        Args:
            order: Loaded order to transition
            target_status: Desired status
            actor_id: User performing the change, None for system changes

        Returns:
            The status the order had before the transition
        """
        self.validate_transition(order, target_status)

        previous_status = order.status
        order.status = target_status
        if actor_id is not None:
            order.updated_by = actor_id

        logger.info(
            "Order status transition applied",
            order_id=order.id,
            transition=f"{previous_status.value}->{target_status.value}",
            actor_id=actor_id,
        )
        return previous_status

    def follow_up_status(self, status: OrderStatus) -> Optional[OrderStatus]:
        """Status the order advances to automatically after entering ``status``."""
        return self._follow_ups.get(status)

    def _guard_completion(self, order: Order) -> None:
        if order.actual_completion is None:
            raise OrderValidationError(
                "An actual completion time is required to complete an order",
                order_id=order.id,
                field="actual_completion",
            )


_state_machine = OrderStateMachine()


def get_order_state_machine() -> OrderStateMachine:
    """Return the shared, stateless OrderStateMachine."""
    return _state_machine


def describe_transition_error(error: InvalidOrderStateError) -> Dict[str, Any]:
    """Structured view of an InvalidOrderStateError for logs and API bodies."""
    return {
        "message": str(error),
        "current_status": error.current_status.value,
        "target_status": error.target_status.value if error.target_status else None,
        "expected_statuses": [status.value for status in error.expected_statuses],
        **error.context,
    }
