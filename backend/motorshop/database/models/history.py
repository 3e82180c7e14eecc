"""
Order history model: the append-only audit log.

Rows are inserted by ``motorshop.services.orders.history.AuditTrailRecorder``
and are never updated or deleted; the mapper refuses both.
"""

from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from motorshop.database.base import BaseModel


class OrderHistoryImmutableError(RuntimeError):
    """Raised when code attempts to change or remove a history row."""


class OrderHistory(BaseModel):
    """
    One field change on an order, or one gate flip on its items/services.

    Attributes:
        order_id: Order the change belongs to
        field_changed: HistoryField value identifying the field
        old_value: Serialized value before the change (None when unset)
        new_value: Serialized value after the change (None when cleared)
        comment: Optional free-text note supplied with the change
        created_by: Actor, else the order's updater, else its creator
        created_at: When the change was recorded
    """

    __tablename__ = "order_histories"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="Order the change belongs to",
    )

    field_changed: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Identifier of the changed field",
    )

    old_value: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Serialized value before the change",
    )

    new_value: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Serialized value after the change",
    )

    comment: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Free-text note about the change",
    )

    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="User the change is attributed to",
    )

    __table_args__ = (
        Index("ix_order_histories_order_created", "order_id", "created_at"),
        Index("ix_order_histories_order_field", "order_id", "field_changed"),
    )


@event.listens_for(OrderHistory, "before_update")
def _reject_history_update(mapper, connection, target: OrderHistory) -> None:
    raise OrderHistoryImmutableError(
        f"Order history entry {target.id} is append-only and cannot be updated"
    )


@event.listens_for(OrderHistory, "before_delete")
def _reject_history_delete(mapper, connection, target: OrderHistory) -> None:
    raise OrderHistoryImmutableError(
        f"Order history entry {target.id} is append-only and cannot be deleted"
    )
