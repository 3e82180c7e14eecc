"""Typed errors raised by the order lifecycle.

Every error carries a message plus keyword context for structured
logging; callers branch on the class.
"""

from typing import Any, Iterable, Optional

from motorshop.services.orders.enums import OrderStatus


class OrderServiceError(Exception):
    """Base exception for order lifecycle errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class OrderValidationError(OrderServiceError):
    """Raised when input is malformed or violates a business rule."""

    pass


class OrderNotFoundError(OrderServiceError):
    """Raised when a referenced order, item, service or catalog entry is missing."""

    pass


class InvalidOrderStateError(OrderServiceError):
    """Raised when the order status forbids the requested operation.

    Carries the current status, and either the attempted target status
    or the statuses the operation would have accepted.
    """

    def __init__(
        self,
        message: str,
        current_status: OrderStatus,
        target_status: Optional[OrderStatus] = None,
        expected_statuses: Optional[Iterable[OrderStatus]] = None,
        **context: Any,
    ):
        super().__init__(message, **context)
        self.current_status = current_status
        self.target_status = target_status
        self.expected_statuses = tuple(expected_statuses or ())


class OrderConcurrencyError(OrderServiceError):
    """Raised when the order changed underneath the caller; retry or report a conflict."""

    pass


class OrderPersistenceError(OrderServiceError):
    """Raised when the datastore fails; the transaction has been rolled back."""

    pass
