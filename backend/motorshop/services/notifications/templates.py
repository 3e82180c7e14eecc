"""
Subject and body templates for order notifications.
"""

from typing import Any

from motorshop.database.models.notification import NotificationEvent

CUSTOMER_TEMPLATES: dict[NotificationEvent, tuple[str, str]] = {
    NotificationEvent.ORDER_RECEIVED: (
        "We have received your order",
        "Your work order has been received and is now in our queue.",
    ),
    NotificationEvent.ORDER_REVIEWED: (
        "Your order has been reviewed",
        "Your work order has been reviewed and is ready for your approval.",
    ),
    NotificationEvent.ORDER_READY_FOR_WORK: (
        "Your order has been approved and is ready for work",
        "Your work order has been approved and work will begin shortly.",
    ),
    NotificationEvent.ORDER_READY_FOR_DELIVERY: (
        "Your order is ready for delivery",
        "Your work order is ready for delivery.",
    ),
    NotificationEvent.ORDER_DELIVERED: (
        "Your order has been delivered",
        "Your work order has been delivered. Thank you for your business!",
    ),
    NotificationEvent.ORDER_PAID: (
        "Payment received for your order",
        "We have received full payment for your work order.",
    ),
}

AUDIT_SUBJECTS: dict[str, str] = {
    "created": "Audit: Order created",
    "received": "Audit: Order received",
    "reviewed": "Audit: Order reviewed",
    "ready_for_work": "Audit: Order ready for work",
    "delivered": "Audit: Order delivered",
    "paid": "Audit: Order paid",
    "service_completed": "Audit: Service completed",
}
DEFAULT_AUDIT_SUBJECT = "Audit: Order event"
AUDIT_LINE = "An auditable event occurred for an order:"


def _order_lines(payload: dict[str, Any]) -> list[str]:
    lines = []
    if payload.get("order_id") is not None:
        lines.append(f"Order: #{payload['order_id']}")
    if payload.get("title"):
        lines.append(f"Title: {payload['title']}")
    if payload.get("status"):
        lines.append(f"Status: {payload['status']}")
    return lines


def render_notification(
    event: NotificationEvent, payload: dict[str, Any]
) -> tuple[str, str]:
    """
    Render subject and body for a notification.

    Audit notifications take their subject from ``payload["audit_event"]``.

    Returns:
        Tuple of (subject, content)
    """
    if event == NotificationEvent.ORDER_AUDIT:
        audit_event = payload.get("audit_event", "")
        subject = AUDIT_SUBJECTS.get(audit_event, DEFAULT_AUDIT_SUBJECT)
        lines = [AUDIT_LINE, f"Event: {audit_event}", *_order_lines(payload)]
        if payload.get("service_id") is not None:
            lines.append(f"Service: #{payload['service_id']}")
        return subject, "\n".join(lines)

    subject, line = CUSTOMER_TEMPLATES[event]
    return subject, "\n".join([line, *_order_lines(payload)])
