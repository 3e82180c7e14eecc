"""Audit trail recording for repair orders.

Every tracked order field, and every boolean gate on items, components
and services, is written to ``order_histories`` as old/new string pairs.
The string forms are a stored contract: each field kind has one
serializer that normalizes values before comparison, so a change is
recorded only when the normalized strings differ.

Serialized forms:

- enums: the stored value (``Awaiting Review``)
- timestamps: UTC ISO-8601 with microseconds (``2025-01-01T10:00:00.000000Z``)
- categories: sorted, de-duplicated JSON integer array (``[1,2,3]``)
- booleans: ``true`` / ``false``
- everything else: ``str(value)``; None stays None
"""

import json
from datetime import datetime
from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from motorshop.core.logging import get_logger
from motorshop.database.base import as_utc
from motorshop.database.models import Attachment, Order, OrderHistory

logger = get_logger(__name__)

ISO_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
DISPLAY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"
EMPTY_DISPLAY = "empty"


class HistoryField(str, Enum):
    """Identifiers stored in ``OrderHistory.field_changed``."""

    STATUS = "status"
    PRIORITY = "priority"
    ASSIGNED_TO = "assigned_to"
    ESTIMATED_COMPLETION = "estimated_completion"
    TITLE = "title"
    DESCRIPTION = "description"
    NOTES = "notes"
    CATEGORIES = "categories"
    ITEM_RECEIVED = "item_received"
    ITEM_COMPONENT_RECEIVED = "item_component_received"
    SERVICE_BUDGETED = "service_budgeted"
    SERVICE_AUTHORIZED = "service_authorized"
    SERVICE_COMPLETED = "service_completed"
    ATTACHMENTS = "attachments"

    @property
    def label(self) -> str:
        return field_label(self.value)


def field_label(field: str) -> str:
    """Field name as shown in descriptions ("Estimated completion")."""
    text = field.replace("_", " ")
    return text[:1].upper() + text[1:]


# Diff order for order-level changes
TRACKED_ORDER_FIELDS: tuple[HistoryField, ...] = (
    HistoryField.STATUS,
    HistoryField.PRIORITY,
    HistoryField.ASSIGNED_TO,
    HistoryField.ESTIMATED_COMPLETION,
    HistoryField.TITLE,
    HistoryField.DESCRIPTION,
    HistoryField.NOTES,
    HistoryField.CATEGORIES,
)


# ============================================================================
# Serializers
# ============================================================================


class FieldSerializer:
    """Normalizes one kind of field value to its stored string form."""

    def serialize(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    def display(self, raw: Optional[str]) -> str:
        return EMPTY_DISPLAY if raw is None else raw


class EnumSerializer(FieldSerializer):
    def serialize(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, Enum):
            return str(value.value)
        return str(value)


class TimestampSerializer(FieldSerializer):
    def serialize(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return as_utc(value).strftime(ISO_TIMESTAMP_FORMAT)

    def display(self, raw: Optional[str]) -> str:
        if raw is None:
            return EMPTY_DISPLAY
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return raw
        return as_utc(parsed).strftime(DISPLAY_TIMESTAMP_FORMAT)


class BooleanSerializer(FieldSerializer):
    def serialize(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        return "true" if value else "false"


class IdSetSerializer(FieldSerializer):
    """Sorted, de-duplicated JSON array of integer ids."""

    def serialize(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        ids = sorted({int(item) for item in value})
        return json.dumps(ids, separators=(",", ":"))

    def parse(self, raw: Optional[str]) -> List[int]:
        if not raw:
            return []
        return sorted({int(item) for item in json.loads(raw)})

    def display(self, raw: Optional[str]) -> str:
        ids = self.parse(raw)
        return ", ".join(str(item) for item in ids) if ids else EMPTY_DISPLAY


_text = FieldSerializer()
_enum = EnumSerializer()
_timestamp = TimestampSerializer()
_boolean = BooleanSerializer()
_id_set = IdSetSerializer()

FIELD_SERIALIZERS: Dict[HistoryField, FieldSerializer] = {
    HistoryField.STATUS: _enum,
    HistoryField.PRIORITY: _enum,
    HistoryField.ASSIGNED_TO: _text,
    HistoryField.ESTIMATED_COMPLETION: _timestamp,
    HistoryField.TITLE: _text,
    HistoryField.DESCRIPTION: _text,
    HistoryField.NOTES: _text,
    HistoryField.CATEGORIES: _id_set,
    HistoryField.ITEM_RECEIVED: _boolean,
    HistoryField.ITEM_COMPONENT_RECEIVED: _boolean,
    HistoryField.SERVICE_BUDGETED: _boolean,
    HistoryField.SERVICE_AUTHORIZED: _boolean,
    HistoryField.SERVICE_COMPLETED: _boolean,
    HistoryField.ATTACHMENTS: _text,
}

ORDER_FIELD_READERS: Dict[HistoryField, Callable[[Order], Any]] = {
    HistoryField.STATUS: attrgetter("status"),
    HistoryField.PRIORITY: attrgetter("priority"),
    HistoryField.ASSIGNED_TO: attrgetter("assigned_to"),
    HistoryField.ESTIMATED_COMPLETION: attrgetter("estimated_completion"),
    HistoryField.TITLE: attrgetter("title"),
    HistoryField.DESCRIPTION: attrgetter("description"),
    HistoryField.NOTES: attrgetter("notes"),
    HistoryField.CATEGORIES: lambda order: [category.id for category in order.categories],
}


def serializer_for(field: str) -> FieldSerializer:
    try:
        return FIELD_SERIALIZERS[HistoryField(field)]
    except ValueError:
        return _text


def serialize_field(field: HistoryField, value: Any) -> Optional[str]:
    """Serialize ``value`` the way ``field`` is stored in history."""
    return FIELD_SERIALIZERS[field].serialize(value)


# ============================================================================
# Recorder
# ============================================================================


OrderSnapshot = Dict[HistoryField, Optional[str]]


class AuditTrailRecorder:
    """
    Appends history rows inside the caller's transaction.

    The recorder only adds rows to the session; flushing and committing
    belong to the operation that owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def resolve_creator(order: Order, actor_id: Optional[int]) -> Optional[int]:
        """Attribute a change to the actor, else the order's updater, else its creator."""
        if actor_id is not None:
            return actor_id
        if order.updated_by is not None:
            return order.updated_by
        return order.created_by

    def snapshot(self, order: Order) -> OrderSnapshot:
        """Serialized values of every tracked order field."""
        return {
            field: serialize_field(field, ORDER_FIELD_READERS[field](order))
            for field in TRACKED_ORDER_FIELDS
        }

    def record_order_changes(
        self,
        order: Order,
        before: OrderSnapshot,
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> List[OrderHistory]:
        """
        Diff ``before`` against the order's current state.

        Appends one row per changed field, in ``TRACKED_ORDER_FIELDS``
        order.

        Returns:
            The history rows added, empty when nothing changed
        """
        after = self.snapshot(order)
        entries = [
            self.record_entry(
                order,
                field,
                before.get(field),
                after[field],
                actor_id=actor_id,
                comment=comment,
            )
            for field in TRACKED_ORDER_FIELDS
            if before.get(field) != after[field]
        ]

        if entries:
            logger.debug(
                "Order changes recorded",
                order_id=order.id,
                fields=[entry.field_changed for entry in entries],
            )
        return entries

    def record_gate_change(
        self,
        order: Order,
        field: HistoryField,
        old: bool,
        new: bool,
        actor_id: Optional[int] = None,
    ) -> Optional[OrderHistory]:
        """Append a row for a boolean gate flip; no row when the value is unchanged."""
        old_value = serialize_field(field, bool(old))
        new_value = serialize_field(field, bool(new))
        if old_value == new_value:
            return None
        return self.record_entry(order, field, old_value, new_value, actor_id=actor_id)

    def record_entry(
        self,
        order: Order,
        field: HistoryField,
        old_value: Optional[str],
        new_value: Optional[str],
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> OrderHistory:
        """Append one history row with already-serialized values."""
        entry = OrderHistory(
            order_id=order.id,
            field_changed=field.value,
            old_value=old_value,
            new_value=new_value,
            comment=comment,
            created_by=self.resolve_creator(order, actor_id),
        )
        self.session.add(entry)
        return entry


# ============================================================================
# Descriptions and attachment correlation
# ============================================================================


def _render_ids(ids: Iterable[int], names: Optional[Mapping[int, str]]) -> str:
    if names is None:
        return ", ".join(str(item) for item in ids)
    return ", ".join(names.get(item, str(item)) for item in ids)


def describe_categories(
    old_value: Optional[str],
    new_value: Optional[str],
    category_names: Optional[Mapping[int, str]] = None,
) -> str:
    old_ids = set(_id_set.parse(old_value))
    new_ids = set(_id_set.parse(new_value))
    label = HistoryField.CATEGORIES.label

    if old_ids == new_ids:
        return f"{label} unchanged"
    if not old_ids:
        return f"{label} added: {_render_ids(sorted(new_ids), category_names)}"
    if not new_ids:
        return f"{label} removed (was: {_render_ids(sorted(old_ids), category_names)})"

    parts = []
    added = sorted(new_ids - old_ids)
    removed = sorted(old_ids - new_ids)
    if added:
        parts.append(f"added: {_render_ids(added, category_names)}")
    if removed:
        parts.append(f"removed: {_render_ids(removed, category_names)}")
    return f"{label} " + "; ".join(parts)


def describe_history(
    entry: OrderHistory,
    category_names: Optional[Mapping[int, str]] = None,
) -> str:
    """
    Human-readable description of a history row.

    Examples:
        "Status changed from Received to Awaiting Review"
        "Notes set to: call before pickup"
        "Estimated completion removed (was: 2025-03-01 09:00)"
        "Categories added: 3; removed: 1"
    """
    if entry.field_changed == HistoryField.CATEGORIES.value:
        return describe_categories(entry.old_value, entry.new_value, category_names)

    serializer = serializer_for(entry.field_changed)
    label = field_label(entry.field_changed)

    if entry.old_value is None and entry.new_value is not None:
        return f"{label} set to: {serializer.display(entry.new_value)}"
    if entry.new_value is None and entry.old_value is not None:
        return f"{label} removed (was: {serializer.display(entry.old_value)})"
    return (
        f"{label} changed from {serializer.display(entry.old_value)} "
        f"to {serializer.display(entry.new_value)}"
    )


def find_related_attachments(
    entry: OrderHistory,
    attachments: Sequence[Attachment],
    window_seconds: int = 60,
) -> List[Attachment]:
    """
    Attachments that were probably uploaded with an ``attachments`` history row.

    Best effort only: an attachment matches when its file name equals the
    row's new value (or old value, for removals) and it was created within
    ``window_seconds`` of the row. There is no foreign key behind this.
    """
    if entry.field_changed != HistoryField.ATTACHMENTS.value:
        return []

    file_name = entry.new_value or entry.old_value
    if not file_name:
        return []

    recorded_at = as_utc(entry.created_at)
    return [
        attachment
        for attachment in attachments
        if attachment.file_name == file_name
        and abs((as_utc(attachment.created_at) - recorded_at).total_seconds())
        <= window_seconds
    ]


def history_entry_payload(
    entry: OrderHistory,
    attachments: Sequence[Attachment] = (),
    category_names: Optional[Mapping[int, str]] = None,
    window_seconds: int = 60,
) -> Dict[str, Any]:
    """Plain-dict view of a history row for listing UIs."""
    return {
        "id": entry.id,
        "order_id": entry.order_id,
        "field_changed": entry.field_changed,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "comment": entry.comment,
        "description": describe_history(entry, category_names),
        "created_by": entry.created_by,
        "created_at": as_utc(entry.created_at).isoformat(),
        "attachments": [
            {
                "id": attachment.id,
                "file_name": attachment.file_name,
                "file_path": attachment.file_path,
                "mime_type": attachment.mime_type,
                "file_size": attachment.file_size,
            }
            for attachment in find_related_attachments(
                entry, attachments, window_seconds
            )
        ],
    }
