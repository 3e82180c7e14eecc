"""
Notification dispatch for order lifecycle events.

Lifecycle operations collect ``OrderNotification`` values while their
transaction is open and hand them to ``NotificationDispatcher`` only after
commit. A failing sink never propagates back into the lifecycle
operation: each notification is attempted independently and failures are
logged.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from motorshop.core.config import get_settings
from motorshop.core.logging import get_logger
from motorshop.database.models.notification import NotificationEvent

logger = get_logger(__name__)


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """
        Initialize notification service error.

        Args:
            message: Error message
            **context: Additional error context
        """
        super().__init__(message)
        self.context = context


class NotificationDeliveryError(NotificationServiceError):
    """Exception for notification delivery failures."""

    pass


@dataclass
class OrderNotification:
    """A notification queued by a lifecycle operation."""

    user_ids: list[int]
    event: NotificationEvent
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationSink:
    """Destination for order notifications."""

    def notify(
        self,
        user_ids: list[int],
        event: NotificationEvent,
        payload: dict[str, Any],
    ) -> None:
        raise NotImplementedError


class CeleryNotificationSink(NotificationSink):
    """
    Enqueues the order notification Celery task for each notification.
    """

    def notify(
        self,
        user_ids: list[int],
        event: NotificationEvent,
        payload: dict[str, Any],
    ) -> None:
        from motorshop.services.notifications.tasks import (
            send_order_notification_task,
        )

        send_order_notification_task.apply_async(
            kwargs={
                "user_ids": list(user_ids),
                "event": event.value,
                "payload": payload,
            },
            retry=True,
        )
        logger.debug(
            "Order notification queued",
            notification_event=event.value,
            recipients=len(user_ids),
            order_id=payload.get("order_id"),
        )


class NotificationDispatcher:
    """
    Sends queued notifications to a sink, isolating failures.
    """

    def __init__(self, sink: NotificationSink, enabled: bool = True):
        self.sink = sink
        self.enabled = enabled

    def dispatch(self, pending: Iterable[OrderNotification]) -> int:
        """
        Hand each notification to the sink.

        Args:
            pending: Notifications collected during a committed operation

        Returns:
            Number of notifications the sink accepted
        """
        if not self.enabled:
            logger.debug("Notifications disabled, skipping dispatch")
            return 0

        delivered = 0
        for notification in pending:
            if not notification.user_ids:
                continue
            try:
                self.sink.notify(
                    notification.user_ids,
                    notification.event,
                    notification.payload,
                )
                delivered += 1
            except Exception as e:
                logger.error(
                    "Failed to dispatch order notification",
                    notification_event=notification.event.value,
                    user_ids=notification.user_ids,
                    order_id=notification.payload.get("order_id"),
                    error=str(e),
                    exc_info=True,
                )
        return delivered


def get_notification_dispatcher(
    sink: Optional[NotificationSink] = None,
) -> NotificationDispatcher:
    """
    Build the dispatcher used by the lifecycle service.

    Args:
        sink: Notification sink (defaults to the Celery sink)
    """
    settings = get_settings()
    return NotificationDispatcher(
        sink or CeleryNotificationSink(),
        enabled=settings.notifications_enabled,
    )
