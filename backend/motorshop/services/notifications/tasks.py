"""
Celery tasks for background order notification delivery.

The worker renders each notification and records one in-app
``NotificationLog`` row per recipient. E-mail and push adapters read
those rows; they are not part of this package.
"""

import asyncio
from typing import Any, Optional

from celery import Task, shared_task
from celery.exceptions import MaxRetriesExceededError
from sqlalchemy.exc import SQLAlchemyError

from motorshop.core.logging import get_logger
from motorshop.database.base import utcnow
from motorshop.database.connection import close_database_connections, get_session
from motorshop.database.models.notification import (
    NotificationEvent,
    NotificationLog,
    NotificationStatus,
)
from motorshop.services.notifications.service import (
    NotificationDeliveryError,
    NotificationServiceError,
)
from motorshop.services.notifications.templates import render_notification

logger = get_logger(__name__)


class NotificationTask(Task):
    """
    Base task class for notification tasks with retry logic.
    """

    autoretry_for = (NotificationServiceError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            "Notification task failed",
            task_id=task_id,
            exception=str(exc),
            kwargs=kwargs,
            exc_info=einfo,
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.warning(
            "Notification task retrying",
            task_id=task_id,
            exception=str(exc),
            retry_count=self.request.retries,
            max_retries=self.max_retries,
        )

    def on_success(
        self,
        retval: Any,
        task_id: str,
        args: tuple,
        kwargs: dict,
    ) -> None:
        logger.info(
            "Notification task completed successfully",
            task_id=task_id,
            result=retval,
        )


async def store_notifications(
    user_ids: list[int],
    event: NotificationEvent,
    order_id: Optional[int],
    subject: str,
    content: str,
) -> int:
    """
    Persist one sent notification row per recipient.

    Returns:
        Number of rows written

    Raises:
        NotificationDeliveryError: If the rows cannot be stored
    """
    sent_at = utcnow()
    try:
        async with get_session() as session:
            session.add_all(
                [
                    NotificationLog(
                        user_id=user_id,
                        order_id=order_id,
                        event=event,
                        subject=subject,
                        content=content,
                        status=NotificationStatus.SENT,
                        sent_at=sent_at,
                    )
                    for user_id in user_ids
                ]
            )
    except SQLAlchemyError as e:
        raise NotificationDeliveryError(
            "Failed to store notifications",
            event=event.value,
            order_id=order_id,
            error=str(e),
        ) from e
    return len(user_ids)


async def _deliver(
    user_ids: list[int],
    event: NotificationEvent,
    order_id: Optional[int],
    subject: str,
    content: str,
) -> int:
    # Pooled connections belong to this run's event loop.
    try:
        return await store_notifications(user_ids, event, order_id, subject, content)
    finally:
        await close_database_connections()


@shared_task(
    bind=True,
    base=NotificationTask,
    name="notifications.send_order_notification",
    time_limit=300,
    soft_time_limit=240,
)
def send_order_notification_task(
    self: Task,
    user_ids: list[int],
    event: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """
    Render an order notification and record it for each recipient.

    Args:
        self: Task instance
        user_ids: Recipients
        event: NotificationEvent value
        payload: Order context (order_id, title, status, audit_event)

    Returns:
        Dictionary with the event and number of stored notifications
    """
    logger.info(
        "Processing order notification task",
        task_id=self.request.id,
        notification_event=event,
        recipients=len(user_ids),
        order_id=payload.get("order_id"),
    )

    notification_event = NotificationEvent.from_string(event)
    subject, content = render_notification(notification_event, payload)

    try:
        stored = asyncio.run(
            _deliver(
                user_ids,
                notification_event,
                payload.get("order_id"),
                subject,
                content,
            )
        )
    except NotificationServiceError as e:
        logger.error(
            "Order notification delivery failed",
            task_id=self.request.id,
            notification_event=event,
            error=str(e),
            retry_count=self.request.retries,
        )
        try:
            raise self.retry(exc=e, countdown=2 ** self.request.retries)
        except MaxRetriesExceededError:
            logger.error(
                "Max retries exceeded for order notification",
                task_id=self.request.id,
                notification_event=event,
            )
            raise

    return {"event": event, "stored": stored}
