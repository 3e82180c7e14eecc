"""
Tests for history serialization, diffing, descriptions and attachment
correlation.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from motorshop.database.models import Attachment, Category, Order, OrderHistory
from motorshop.services.orders.enums import OrderPriority, OrderStatus
from motorshop.services.orders.history import (
    AuditTrailRecorder,
    HistoryField,
    describe_history,
    field_label,
    find_related_attachments,
    history_entry_payload,
    serialize_field,
)

RECORDED_AT = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_session() -> Mock:
    session = Mock()
    session.add = Mock()
    return session


@pytest.fixture
def recorder(mock_session: Mock) -> AuditTrailRecorder:
    return AuditTrailRecorder(mock_session)


def make_order(**kwargs) -> Order:
    values = {
        "id": 10,
        "customer_id": 1,
        "title": "Rebuild",
        "description": "",
        "status": OrderStatus.OPEN,
        "priority": OrderPriority.NORMAL,
        "created_by": 5,
        "updated_by": None,
    }
    values.update(kwargs)
    categories = values.pop("categories", [])
    order = Order(**values)
    order.categories = categories
    return order


def make_entry(field: str, old, new, created_at: datetime = RECORDED_AT) -> OrderHistory:
    return OrderHistory(
        id=1,
        order_id=10,
        field_changed=field,
        old_value=old,
        new_value=new,
        created_at=created_at,
    )


# ============================================================================
# Serializer Tests
# ============================================================================


class TestSerializers:
    """Stored string forms of history values."""

    def test_enum_serialized_as_value(self) -> None:
        assert serialize_field(HistoryField.STATUS, OrderStatus.AWAITING_REVIEW) == "Awaiting Review"
        assert serialize_field(HistoryField.PRIORITY, OrderPriority.URGENT) == "Urgent"

    def test_timestamp_serialized_as_utc_iso(self) -> None:
        value = datetime(2025, 1, 1, 12, 30, 0, 123456, tzinfo=timezone(timedelta(hours=2)))

        assert (
            serialize_field(HistoryField.ESTIMATED_COMPLETION, value)
            == "2025-01-01T10:30:00.123456Z"
        )

    def test_naive_timestamp_treated_as_utc(self) -> None:
        assert (
            serialize_field(HistoryField.ESTIMATED_COMPLETION, datetime(2025, 1, 1, 10, 0))
            == "2025-01-01T10:00:00.000000Z"
        )

    @pytest.mark.parametrize(
        "ids,expected",
        [
            ([3, 1, 2], "[1,2,3]"),
            ([2, 2, 1], "[1,2]"),
            ([], "[]"),
        ],
    )
    def test_categories_sorted_and_deduplicated(self, ids, expected: str) -> None:
        assert serialize_field(HistoryField.CATEGORIES, ids) == expected

    def test_booleans(self) -> None:
        assert serialize_field(HistoryField.SERVICE_COMPLETED, True) == "true"
        assert serialize_field(HistoryField.ITEM_RECEIVED, False) == "false"

    def test_none_stays_none(self) -> None:
        assert serialize_field(HistoryField.NOTES, None) is None
        assert serialize_field(HistoryField.ESTIMATED_COMPLETION, None) is None

    def test_plain_values_stringified(self) -> None:
        assert serialize_field(HistoryField.ASSIGNED_TO, 17) == "17"

    def test_field_labels(self) -> None:
        assert field_label("estimated_completion") == "Estimated completion"
        assert HistoryField.ITEM_COMPONENT_RECEIVED.label == "Item component received"


# ============================================================================
# Recorder Tests
# ============================================================================


class TestAuditTrailRecorder:
    """Snapshot diffing and row creation."""

    def test_no_changes_no_rows(self, recorder: AuditTrailRecorder, mock_session: Mock) -> None:
        order = make_order()
        before = recorder.snapshot(order)

        assert recorder.record_order_changes(order, before, actor_id=2) == []
        mock_session.add.assert_not_called()

    def test_category_reorder_is_not_a_change(self, recorder: AuditTrailRecorder) -> None:
        order = make_order(categories=[Category(id=3), Category(id=1), Category(id=2)])
        before = recorder.snapshot(order)
        order.categories = [Category(id=2), Category(id=1), Category(id=3)]

        assert recorder.record_order_changes(order, before) == []

    def test_rows_follow_tracked_field_order(self, recorder: AuditTrailRecorder) -> None:
        order = make_order()
        before = recorder.snapshot(order)
        order.notes = "Call before pickup"
        order.title = "Rebuild head"
        order.status = OrderStatus.IN_PROGRESS
        order.priority = OrderPriority.HIGH

        entries = recorder.record_order_changes(order, before, actor_id=2, comment="bulk edit")

        assert [entry.field_changed for entry in entries] == [
            "status",
            "priority",
            "title",
            "notes",
        ]
        assert entries[0].old_value == "Open"
        assert entries[0].new_value == "In Progress"
        assert entries[3].old_value is None
        assert all(entry.comment == "bulk edit" for entry in entries)
        assert all(entry.order_id == 10 for entry in entries)

    def test_creator_prefers_actor(self, recorder: AuditTrailRecorder) -> None:
        order = make_order(updated_by=8)

        assert recorder.resolve_creator(order, 2) == 2

    def test_creator_falls_back_to_updater(self, recorder: AuditTrailRecorder) -> None:
        order = make_order(updated_by=8)

        assert recorder.resolve_creator(order, None) == 8

    def test_creator_falls_back_to_creator(self, recorder: AuditTrailRecorder) -> None:
        order = make_order(updated_by=None, created_by=5)

        assert recorder.resolve_creator(order, None) == 5

    def test_gate_change_recorded(self, recorder: AuditTrailRecorder, mock_session: Mock) -> None:
        order = make_order()

        entry = recorder.record_gate_change(order, HistoryField.SERVICE_AUTHORIZED, False, True)

        assert entry.field_changed == "service_authorized"
        assert (entry.old_value, entry.new_value) == ("false", "true")
        assert entry.created_by == 5
        mock_session.add.assert_called_once_with(entry)

    def test_unchanged_gate_not_recorded(
        self, recorder: AuditTrailRecorder, mock_session: Mock
    ) -> None:
        order = make_order()

        assert recorder.record_gate_change(order, HistoryField.ITEM_RECEIVED, True, True) is None
        mock_session.add.assert_not_called()


# ============================================================================
# Description Tests
# ============================================================================


class TestDescriptions:
    """Human-readable history descriptions."""

    def test_changed(self) -> None:
        entry = make_entry("status", "Received", "Awaiting Review")

        assert describe_history(entry) == "Status changed from Received to Awaiting Review"

    def test_set(self) -> None:
        entry = make_entry("notes", None, "call before pickup")

        assert describe_history(entry) == "Notes set to: call before pickup"

    def test_removed_timestamp(self) -> None:
        entry = make_entry("estimated_completion", "2025-03-01T09:00:00.000000Z", None)

        assert describe_history(entry) == "Estimated completion removed (was: 2025-03-01 09:00)"

    def test_categories_added_and_removed(self) -> None:
        entry = make_entry("categories", "[1,2]", "[2,3]")

        assert describe_history(entry) == "Categories added: 3; removed: 1"

    def test_categories_only_added(self) -> None:
        entry = make_entry("categories", "[1]", "[1,4]")

        assert describe_history(entry) == "Categories added: 4"

    def test_categories_from_empty(self) -> None:
        entry = make_entry("categories", "[]", "[1,2]")

        assert describe_history(entry) == "Categories added: 1, 2"

    def test_categories_to_empty(self) -> None:
        entry = make_entry("categories", "[1,2]", None)

        assert describe_history(entry) == "Categories removed (was: 1, 2)"

    def test_categories_unchanged(self) -> None:
        entry = make_entry("categories", "[2,1]", "[1,2]")

        assert describe_history(entry) == "Categories unchanged"

    def test_categories_use_names(self) -> None:
        entry = make_entry("categories", "[1]", "[1,2]")

        assert describe_history(entry, {1: "Gasoline", 2: "Diesel"}) == "Categories added: Diesel"

    def test_gate_description(self) -> None:
        entry = make_entry("service_completed", "false", "true")

        assert describe_history(entry) == "Service completed changed from false to true"


# ============================================================================
# Attachment Correlation Tests
# ============================================================================


class TestAttachmentCorrelation:
    """Best-effort pairing of upload rows with attachments."""

    @pytest.fixture
    def attachments(self) -> list[Attachment]:
        return [
            Attachment(
                id=1,
                order_id=10,
                file_name="head.jpg",
                file_path="orders/10/head.jpg",
                created_at=RECORDED_AT + timedelta(seconds=5),
            ),
            Attachment(
                id=2,
                order_id=10,
                file_name="head.jpg",
                file_path="orders/10/head-old.jpg",
                created_at=RECORDED_AT - timedelta(minutes=10),
            ),
            Attachment(
                id=3,
                order_id=10,
                file_name="block.jpg",
                file_path="orders/10/block.jpg",
                created_at=RECORDED_AT,
            ),
        ]

    def test_matches_name_within_window(self, attachments: list[Attachment]) -> None:
        entry = make_entry("attachments", None, "head.jpg")

        related = find_related_attachments(entry, attachments, window_seconds=60)

        assert [attachment.id for attachment in related] == [1]

    def test_removal_matches_old_value(self, attachments: list[Attachment]) -> None:
        entry = make_entry("attachments", "block.jpg", None)

        assert [a.id for a in find_related_attachments(entry, attachments)] == [3]

    def test_other_fields_never_match(self, attachments: list[Attachment]) -> None:
        entry = make_entry("notes", None, "head.jpg")

        assert find_related_attachments(entry, attachments) == []

    def test_naive_timestamps_compared_as_utc(self, attachments: list[Attachment]) -> None:
        entry = make_entry("attachments", None, "head.jpg", created_at=datetime(2025, 1, 1, 10, 0, 30))

        assert [a.id for a in find_related_attachments(entry, attachments)] == [1]

    def test_payload(self, attachments: list[Attachment]) -> None:
        entry = make_entry("attachments", None, "head.jpg")

        payload = history_entry_payload(entry, attachments)

        assert payload["description"] == "Attachments set to: head.jpg"
        assert payload["created_at"] == "2025-01-01T10:00:00+00:00"
        assert payload["attachments"][0]["file_path"] == "orders/10/head.jpg"
