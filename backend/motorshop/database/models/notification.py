"""
Notification log model for in-app order notifications.

The notification worker writes one row per recipient when it processes a
queued lifecycle notification.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from motorshop.database.base import BaseModel, enum_type


class NotificationEvent(str, enum.Enum):
    """Lifecycle milestone a notification announces."""

    ORDER_RECEIVED = "order_received"
    ORDER_REVIEWED = "order_reviewed"
    ORDER_READY_FOR_WORK = "order_ready_for_work"
    ORDER_READY_FOR_DELIVERY = "order_ready_for_delivery"
    ORDER_DELIVERED = "order_delivered"
    ORDER_PAID = "order_paid"
    ORDER_AUDIT = "order_audit"

    @classmethod
    def from_string(cls, value: str) -> "NotificationEvent":
        """
        Convert string to NotificationEvent.

        Raises:
            ValueError: If value is not a valid event
        """
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid notification event: {value}")


class NotificationStatus(str, enum.Enum):
    """Delivery state of a logged notification."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationLog(BaseModel):
    """
    Notification delivered to one user about one order.

    Attributes:
        user_id: Recipient
        order_id: Order the notification is about
        event: Lifecycle milestone
        subject: Rendered subject line
        content: Rendered body
        status: Delivery state
        sent_at: When the notification was marked sent
    """

    __tablename__ = "notification_logs"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="User receiving the notification",
    )

    order_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="Order the notification is about",
    )

    event: Mapped[NotificationEvent] = mapped_column(
        enum_type(NotificationEvent, "notification_event"),
        nullable=False,
        comment="Lifecycle milestone",
    )

    subject: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Notification subject",
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Notification body",
    )

    status: Mapped[NotificationStatus] = mapped_column(
        enum_type(NotificationStatus, "notification_status"),
        nullable=False,
        default=NotificationStatus.PENDING,
        comment="Delivery state",
    )

    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the notification was sent",
    )

    __table_args__ = (
        Index("ix_notification_logs_user_status", "user_id", "status"),
        Index("ix_notification_logs_order", "order_id"),
    )
