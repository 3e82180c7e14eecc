"""
Order lifecycle service orchestrating repair orders from intake to payment.

Each public operation runs in one database transaction: the order row is
locked, the current status checked, the aggregate mutated, history rows
appended and totals re-derived. Only after the commit are cache
namespaces bumped and notifications dispatched; failures in either are
logged and never undo the committed change.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence, Union
from uuid import UUID

from pydantic import BaseModel as SchemaModel
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from motorshop.core.config import get_settings
from motorshop.core.logging import bind_actor, get_logger, log_performance
from motorshop.database.base import as_utc
from motorshop.database.connection import get_session_factory
from motorshop.database.models import (
    Attachment,
    NotificationEvent,
    Order,
    OrderHistory,
    OrderItem,
    OrderItemComponent,
    OrderMotorInfo,
    OrderService,
    User,
)
from motorshop.schemas.orders import BudgetServiceEntry, OrderCreate, OrderUpdate
from motorshop.services.cache.versions import (
    ATTACHMENTS,
    ORDER_HISTORIES,
    ORDERS,
    CacheVersionStore,
    RedisCacheVersionStore,
)
from motorshop.services.notifications.service import (
    NotificationDispatcher,
    OrderNotification,
    get_notification_dispatcher,
)
from motorshop.services.orders.enums import OrderStatus
from motorshop.services.orders.errors import (
    InvalidOrderStateError,
    OrderConcurrencyError,
    OrderNotFoundError,
    OrderPersistenceError,
    OrderServiceError,
    OrderValidationError,
)
from motorshop.services.orders.history import (
    AuditTrailRecorder,
    HistoryField,
    IdSetSerializer,
    history_entry_payload,
)
from motorshop.services.orders.repository import OrderRepository
from motorshop.services.orders.state_machine import (
    OrderStateMachine,
    describe_transition_error,
    get_order_state_machine,
)
from motorshop.services.orders.totals import TotalsRecalculator, compute_totals, to_money

logger = get_logger(__name__)

# Status entered -> (customer event, admin audit event or None)
STATUS_NOTIFICATIONS: dict[OrderStatus, tuple[NotificationEvent, Optional[str]]] = {
    OrderStatus.RECEIVED: (NotificationEvent.ORDER_RECEIVED, "received"),
    OrderStatus.REVIEWED: (NotificationEvent.ORDER_REVIEWED, "reviewed"),
    OrderStatus.READY_FOR_WORK: (NotificationEvent.ORDER_READY_FOR_WORK, "ready_for_work"),
    OrderStatus.READY_FOR_DELIVERY: (NotificationEvent.ORDER_READY_FOR_DELIVERY, None),
    OrderStatus.DELIVERED: (NotificationEvent.ORDER_DELIVERED, "delivered"),
    OrderStatus.PAID: (NotificationEvent.ORDER_PAID, "paid"),
}

_category_set = IdSetSerializer()

UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "assigned_to",
    "estimated_completion",
    "actual_completion",
    "notes",
)


@dataclass
class _Operation:
    """State shared by the steps of one lifecycle operation."""

    session: AsyncSession
    repository: OrderRepository
    recorder: AuditTrailRecorder
    totals: TotalsRecalculator
    actor_id: Optional[int]
    notifications: list[OrderNotification] = field(default_factory=list)
    namespaces: set[str] = field(default_factory=set)
    admin_ids: Optional[list[int]] = None

    def touch(self, *namespaces: str) -> None:
        self.namespaces.update(namespaces)


def _actor_id(actor: Optional[User]) -> Optional[int]:
    return actor.id if actor is not None else None


def _differs(current: Any, value: Any) -> bool:
    # Stored timestamps may come back naive.
    if isinstance(current, datetime) and isinstance(value, datetime):
        return as_utc(current) != as_utc(value)
    return current != value


def _parse(schema: type[SchemaModel], data: Any) -> Any:
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise OrderValidationError(
            f"Invalid {schema.__name__} data",
            errors=e.errors(include_url=False),
        ) from e


def _order_payload(order: Order) -> dict[str, Any]:
    return {
        "order_id": order.id,
        "order_uuid": str(order.uuid),
        "customer_id": order.customer_id,
        "title": order.title,
        "status": order.status.value,
    }


class OrderLifecycleService:
    """
    Orchestrates the repair order workflow.

    Collaborators are injected by the composition root: the session
    factory owns database access, the version store receives cache
    invalidation signals and the dispatcher delivers notifications.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_versions: CacheVersionStore,
        notifications: NotificationDispatcher,
        state_machine: Optional[OrderStateMachine] = None,
        attachment_window_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.cache_versions = cache_versions
        self.notifications = notifications
        self.state_machine = state_machine or get_order_state_machine()
        self.attachment_window_seconds = (
            attachment_window_seconds
            if attachment_window_seconds is not None
            else get_settings().attachment_correlation_window_seconds
        )

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(
        self,
        name: str,
        actor_id: Optional[int],
        **context: Any,
    ) -> AsyncIterator[_Operation]:
        """
        Run the enclosed block in one transaction, then publish side effects.
        """
        with bind_actor(actor_id, name), log_performance(logger, name, **context):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        repository = OrderRepository(session)
                        op = _Operation(
                            session=session,
                            repository=repository,
                            recorder=AuditTrailRecorder(session),
                            totals=TotalsRecalculator(repository),
                            actor_id=actor_id,
                        )
                        yield op
            except InvalidOrderStateError as e:
                logger.warning("Order state rejected operation", **describe_transition_error(e))
                raise
            except OrderServiceError as e:
                logger.warning(
                    "Order operation rejected",
                    error_type=type(e).__name__,
                    error=str(e),
                    **e.context,
                )
                raise
            except StaleDataError as e:
                logger.warning("Order was modified concurrently", error=str(e), **context)
                raise OrderConcurrencyError(
                    "Order was modified by another request", **context
                ) from e
            except SQLAlchemyError as e:
                logger.error("Order transaction failed", error=str(e), **context)
                raise OrderPersistenceError(
                    "Failed to persist order changes", error=str(e), **context
                ) from e

            await self._publish(op)

    async def _publish(self, op: _Operation) -> None:
        for namespace in sorted(op.namespaces):
            try:
                await self.cache_versions.bump_version(namespace)
            except RedisError as e:
                logger.warning(
                    "Failed to bump cache version",
                    namespace=namespace,
                    error=str(e),
                )
        self.notifications.dispatch(op.notifications)

    async def _lock_order(
        self,
        op: _Operation,
        order_id: int,
        expected_version: Optional[int] = None,
    ) -> Order:
        order = await op.repository.get_order(order_id, for_update=True)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        if expected_version is not None and order.version != expected_version:
            raise OrderConcurrencyError(
                "Order version does not match",
                order_id=order_id,
                expected_version=expected_version,
                current_version=order.version,
            )
        return order

    async def _reload(self, op: _Operation, order_id: int) -> Order:
        await op.repository.flush()
        order = await op.repository.get_order(order_id, refresh=True)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    # ------------------------------------------------------------------
    # Transitions and notifications
    # ------------------------------------------------------------------

    async def _admin_ids(self, op: _Operation) -> list[int]:
        if op.admin_ids is None:
            op.admin_ids = await op.repository.get_active_admin_ids()
        return op.admin_ids

    async def _queue_audit(
        self,
        op: _Operation,
        order: Order,
        audit_event: str,
        **extra: Any,
    ) -> None:
        admin_ids = await self._admin_ids(op)
        if not admin_ids:
            return
        op.notifications.append(
            OrderNotification(
                user_ids=list(admin_ids),
                event=NotificationEvent.ORDER_AUDIT,
                payload={**_order_payload(order), "audit_event": audit_event, **extra},
            )
        )

    def _queue_customer(
        self, op: _Operation, order: Order, event: NotificationEvent
    ) -> None:
        op.notifications.append(
            OrderNotification(
                user_ids=[order.customer_id],
                event=event,
                payload=_order_payload(order),
            )
        )

    async def _transition(
        self,
        op: _Operation,
        order: Order,
        target_status: OrderStatus,
        comment: Optional[str] = None,
    ) -> None:
        """
        Move the order to ``target_status`` and follow any automatic hop.

        Each hop is table-checked, records its own status row and queues
        the notifications for the status it enters.
        """
        before = op.recorder.snapshot(order)
        self.state_machine.apply_transition(order, target_status, op.actor_id)
        op.recorder.record_order_changes(order, before, actor_id=op.actor_id, comment=comment)
        op.touch(ORDERS, ORDER_HISTORIES)

        notification = STATUS_NOTIFICATIONS.get(target_status)
        if notification is not None:
            event, audit_event = notification
            self._queue_customer(op, order, event)
            if audit_event is not None:
                await self._queue_audit(op, order, audit_event)

        follow_up = self.state_machine.follow_up_status(target_status)
        if follow_up is not None:
            await self._transition(op, order, follow_up)

    def _flip_gate(
        self,
        op: _Operation,
        order: Order,
        target: Union[OrderItem, OrderItemComponent, OrderService],
        attribute: str,
        history_field: HistoryField,
        value: bool,
    ) -> bool:
        old = bool(getattr(target, attribute))
        if old == value:
            return False
        setattr(target, attribute, value)
        op.recorder.record_gate_change(order, history_field, old, value, actor_id=op.actor_id)
        op.touch(ORDERS, ORDER_HISTORIES)
        return True

    # ------------------------------------------------------------------
    # Intake and review flow
    # ------------------------------------------------------------------

    async def create_order_with_motor_items(
        self,
        data: Union[OrderCreate, Mapping[str, Any]],
        actor: Optional[User] = None,
    ) -> Order:
        """
        Create an order with motor info, items and components.

        The order starts in Received and is moved to Awaiting Review in
        the same transaction.

        Args:
            data: Order intake payload
            actor: User creating the order

        Returns:
            Fully loaded order in Awaiting Review

        Raises:
            OrderValidationError: If the payload is invalid
            OrderNotFoundError: If the customer, assignee or a category is unknown
        """
        payload: OrderCreate = _parse(OrderCreate, data)
        actor_id = _actor_id(actor)

        async with self._operation(
            "create_order_with_motor_items",
            actor_id,
            customer_id=payload.customer_id,
        ) as op:
            user_ids = {payload.customer_id}
            if payload.assigned_to is not None:
                user_ids.add(payload.assigned_to)
            missing_users = user_ids - await op.repository.get_existing_user_ids(
                sorted(user_ids)
            )
            if missing_users:
                raise OrderNotFoundError(
                    "Referenced users not found",
                    user_ids=sorted(missing_users),
                )

            categories = []
            if payload.category_ids:
                categories = await op.repository.get_categories(payload.category_ids)
                missing_categories = set(payload.category_ids) - {c.id for c in categories}
                if missing_categories:
                    raise OrderNotFoundError(
                        "Categories not found or inactive",
                        category_ids=sorted(missing_categories),
                    )

            motor_data = payload.motor_info.model_dump()
            totals = compute_totals([], motor_data.pop("down_payment"))
            motor_info = OrderMotorInfo(
                **motor_data,
                down_payment=totals.down_payment,
                total_cost=totals.total_cost,
                is_fully_paid=totals.is_fully_paid,
            )

            order = Order(
                customer_id=payload.customer_id,
                title=payload.title,
                description=payload.description,
                priority=payload.priority,
                assigned_to=payload.assigned_to,
                estimated_completion=payload.estimated_completion,
                notes=payload.notes,
                status=OrderStatus.RECEIVED,
                created_by=actor_id,
                updated_by=actor_id,
                categories=categories,
                motor_info=motor_info,
                items=[
                    OrderItem(
                        item_type=item.item_type,
                        is_received=True,
                        components=[
                            OrderItemComponent(component_name=name, is_received=True)
                            for name in item.components
                        ],
                    )
                    for item in payload.items
                ],
            )
            op.repository.add(order)
            await op.repository.flush()

            self._queue_customer(op, order, NotificationEvent.ORDER_RECEIVED)
            await self._queue_audit(op, order, "created")

            await self._transition(op, order, OrderStatus.AWAITING_REVIEW)
            result = await self._reload(op, order.id)

        logger.info(
            "Order created",
            order_id=result.id,
            order_uuid=str(result.uuid),
            items=[item.item_type.value for item in result.items],
        )
        return result

    async def submit_budget(
        self,
        order_id: int,
        services: Sequence[Union[BudgetServiceEntry, Mapping[str, Any]]],
        actor: Optional[User] = None,
    ) -> Order:
        """
        Quote services for an order awaiting review.

        Each entry snapshots the catalog price onto the order service and
        marks it budgeted. The order then moves to Reviewed and on to
        Awaiting Customer Approval.

        Raises:
            InvalidOrderStateError: If the order is not awaiting review
            OrderNotFoundError: If an item or catalog key is unknown
            OrderValidationError: If an entry does not fit its item
        """
        entries = [_parse(BudgetServiceEntry, entry) for entry in services]
        if not entries:
            raise OrderValidationError("At least one service is required", order_id=order_id)

        async with self._operation("submit_budget", _actor_id(actor), order_id=order_id) as op:
            order = await self._lock_order(op, order_id)
            self.state_machine.ensure_status(order, [OrderStatus.AWAITING_REVIEW])

            for entry in entries:
                item = order.find_item(entry.order_item_id)
                if item is None:
                    raise OrderNotFoundError(
                        "Order item not found",
                        order_id=order_id,
                        order_item_id=entry.order_item_id,
                    )

                catalog = await op.repository.find_active_service_by_key(entry.service_key)
                if catalog is None:
                    raise OrderNotFoundError(
                        "Service not found or inactive",
                        service_key=entry.service_key,
                    )
                if catalog.item_type != item.item_type:
                    raise OrderValidationError(
                        f"Service {catalog.service_key} does not apply to "
                        f"{item.item_type.value}",
                        service_key=catalog.service_key,
                        item_type=item.item_type.value,
                    )
                if catalog.requires_measurement and not entry.measurement:
                    raise OrderValidationError(
                        f"Service {catalog.service_key} requires a measurement",
                        service_key=catalog.service_key,
                        order_item_id=item.id,
                    )

                service = next(
                    (s for s in item.services if s.service_key == catalog.service_key),
                    None,
                )
                if service is None:
                    service = OrderService(
                        service_key=catalog.service_key,
                        is_budgeted=False,
                        is_authorized=False,
                        is_completed=False,
                    )
                    item.services.append(service)
                if not service.is_budgeted:
                    service.base_price = to_money(catalog.base_price)
                    service.net_price = catalog.net_price
                service.measurement = entry.measurement
                self._flip_gate(
                    op, order, service, "is_budgeted", HistoryField.SERVICE_BUDGETED, True
                )

            await op.totals.recalculate(order.id)
            await self._transition(op, order, OrderStatus.REVIEWED)
            result = await self._reload(op, order.id)

        return result

    async def customer_approval(
        self,
        order_id: int,
        authorized_service_ids: Iterable[int],
        down_payment: Optional[Decimal] = None,
        actor: Optional[User] = None,
    ) -> Order:
        """
        Record the customer's decision on the quoted services.

        Listed services are authorized; every other budgeted service stays
        unauthorized, which is how the customer declines it.

        Raises:
            InvalidOrderStateError: If the order is not awaiting approval
            OrderNotFoundError: If a service id is not on the order
            OrderValidationError: If a service was never budgeted
        """
        service_ids = list(dict.fromkeys(authorized_service_ids))
        if down_payment is not None and to_money(down_payment) < 0:
            raise OrderValidationError("Down payment cannot be negative", order_id=order_id)

        async with self._operation(
            "customer_approval", _actor_id(actor), order_id=order_id
        ) as op:
            order = await self._lock_order(op, order_id)
            self.state_machine.ensure_status(order, [OrderStatus.AWAITING_CUSTOMER_APPROVAL])

            services = await self._order_services(op, order, service_ids)
            for service in services:
                if not service.is_budgeted:
                    raise OrderValidationError(
                        "Only budgeted services can be authorized",
                        order_id=order_id,
                        service_id=service.id,
                    )
                self._flip_gate(
                    op, order, service, "is_authorized", HistoryField.SERVICE_AUTHORIZED, True
                )

            if down_payment is not None:
                await op.totals.apply_payment(order.id, down_payment=down_payment)
            await op.totals.recalculate(order.id)

            await self._transition(op, order, OrderStatus.READY_FOR_WORK)
            result = await self._reload(op, order.id)

        return result

    async def _order_services(
        self, op: _Operation, order: Order, service_ids: Sequence[int]
    ) -> list[OrderService]:
        if not service_ids:
            return []
        services = await op.repository.get_order_services(order.id, service_ids)
        missing = set(service_ids) - {service.id for service in services}
        if missing:
            raise OrderNotFoundError(
                "Services not found on order",
                order_id=order.id,
                service_ids=sorted(missing),
            )
        return services

    # ------------------------------------------------------------------
    # Shop work and delivery
    # ------------------------------------------------------------------

    async def mark_work_completed(
        self,
        order_id: int,
        completed_service_ids: Iterable[int],
        actor: Optional[User] = None,
    ) -> Order:
        """
        Mark authorized services as completed and re-derive totals.

        The status is left alone; mark_ready_for_delivery moves the order on.

        Raises:
            InvalidOrderStateError: If work cannot be recorded in the current status
            OrderNotFoundError: If a service id is not on the order
            OrderValidationError: If a service was not authorized
        """
        service_ids = list(dict.fromkeys(completed_service_ids))
        if not service_ids:
            raise OrderValidationError("At least one service is required", order_id=order_id)

        async with self._operation(
            "mark_work_completed",
            _actor_id(actor),
            order_id=order_id,
            service_ids=service_ids,
        ) as op:
            order = await self._lock_order(op, order_id)
            self.state_machine.ensure_status(
                order, [OrderStatus.READY_FOR_WORK, OrderStatus.IN_PROGRESS]
            )

            services = await self._order_services(op, order, service_ids)
            for service in services:
                if not service.is_authorized:
                    raise OrderValidationError(
                        "Only authorized services can be completed",
                        order_id=order_id,
                        service_id=service.id,
                    )
                if self._flip_gate(
                    op, order, service, "is_completed", HistoryField.SERVICE_COMPLETED, True
                ):
                    await self._queue_audit(
                        op,
                        order,
                        "service_completed",
                        service_id=service.id,
                        service_key=service.service_key,
                    )

            await op.totals.recalculate(order.id)

            result = await self._reload(op, order.id)

        return result

    async def mark_ready_for_delivery(
        self,
        order_id: int,
        actor: Optional[User] = None,
    ) -> Order:
        """
        Move an order whose work is done to Ready for Delivery.

        From Ready for Work the order passes through In Progress first.
        """
        async with self._operation(
            "mark_ready_for_delivery", _actor_id(actor), order_id=order_id
        ) as op:
            order = await self._lock_order(op, order_id)
            self.state_machine.ensure_status(
                order, [OrderStatus.IN_PROGRESS, OrderStatus.READY_FOR_WORK]
            )

            await op.totals.recalculate(order.id)
            if order.status == OrderStatus.READY_FOR_WORK:
                await self._transition(op, order, OrderStatus.IN_PROGRESS)
            await self._transition(op, order, OrderStatus.READY_FOR_DELIVERY)
            result = await self._reload(op, order.id)

        return result

    async def deliver_order(
        self,
        order_id: int,
        actor: Optional[User] = None,
    ) -> Order:
        async with self._operation("deliver_order", _actor_id(actor), order_id=order_id) as op:
            order = await self._lock_order(op, order_id)
            self.state_machine.ensure_status(order, [OrderStatus.READY_FOR_DELIVERY])

            await self._transition(op, order, OrderStatus.DELIVERED)
            result = await self._reload(op, order.id)

        return result

    # ------------------------------------------------------------------
    # General order maintenance
    # ------------------------------------------------------------------

    async def change_status(
        self,
        order_id: int,
        status: Union[OrderStatus, str],
        actor: Optional[User] = None,
        actual_completion: Optional[datetime] = None,
        comment: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """
        Move an order to any status the transition table allows.

        Args:
            order_id: Order identifier
            status: Target status (member, value or name)
            actor: Acting user, None for system-triggered changes
            actual_completion: Completion time, required to complete an order
            comment: Note stored on the status history row
            expected_version: Reject the change if the order moved on

        Raises:
            InvalidOrderStateError: If the transition is not allowed
            OrderValidationError: If the status is unknown or a guard fails
            OrderConcurrencyError: If expected_version is stale
        """
        if isinstance(status, OrderStatus):
            target_status = status
        else:
            try:
                target_status = OrderStatus.from_string(status)
            except ValueError as e:
                raise OrderValidationError(str(e), status=status) from e

        async with self._operation(
            "change_status",
            _actor_id(actor),
            order_id=order_id,
            target_status=target_status.value,
        ) as op:
            order = await self._lock_order(op, order_id, expected_version)
            if actual_completion is not None:
                order.actual_completion = actual_completion

            await self._transition(op, order, target_status, comment=comment)
            result = await self._reload(op, order.id)

        return result

    async def update_order(
        self,
        order_id: int,
        changes: Union[OrderUpdate, Mapping[str, Any]],
        actor: Optional[User] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """
        Apply a partial update to an order.

        One history row is written per tracked field whose serialized
        value changes; an update that changes nothing writes nothing.
        A status change goes through the state machine and a down
        payment change through the totals recalculator.

        Raises:
            OrderValidationError: If the changes are invalid
            OrderNotFoundError: If an assignee or category is unknown
            InvalidOrderStateError: If a requested status is not reachable
            OrderConcurrencyError: If expected_version is stale
        """
        update: OrderUpdate = _parse(OrderUpdate, changes)
        values = update.model_dump(exclude_unset=True)
        actor_id = _actor_id(actor)

        async with self._operation(
            "update_order", actor_id, order_id=order_id, fields=sorted(values)
        ) as op:
            order = await self._lock_order(op, order_id, expected_version)
            before = op.recorder.snapshot(order)
            touched = False

            if values.get("assigned_to") is not None:
                existing = await op.repository.get_existing_user_ids([values["assigned_to"]])
                if values["assigned_to"] not in existing:
                    raise OrderNotFoundError(
                        "Assigned user not found", user_id=values["assigned_to"]
                    )

            for name in UPDATABLE_FIELDS:
                if name not in values:
                    continue
                value = values[name]
                if value is None and name in ("title", "priority"):
                    continue
                if value is None and name == "description":
                    value = ""
                if _differs(getattr(order, name), value):
                    setattr(order, name, value)
                    touched = True

            category_ids = values.get("category_ids")
            if category_ids is not None:
                current_ids = {category.id for category in order.categories}
                if set(category_ids) != current_ids:
                    categories = await op.repository.get_categories(category_ids)
                    missing = set(category_ids) - {c.id for c in categories}
                    if missing:
                        raise OrderNotFoundError(
                            "Categories not found or inactive",
                            category_ids=sorted(missing),
                        )
                    order.categories = categories
                    touched = True

            entries = op.recorder.record_order_changes(order, before, actor_id=actor_id)
            if touched:
                if actor_id is not None:
                    order.updated_by = actor_id
                op.touch(ORDERS)
            if entries:
                op.touch(ORDER_HISTORIES)

            target_status = values.get("status")
            if target_status is not None and target_status != order.status:
                await self._transition(op, order, target_status)

            if values.get("down_payment") is not None:
                motor_info = await op.repository.get_motor_info(order.id)
                current = motor_info.down_payment if motor_info is not None else None
                if current is None or to_money(current) != to_money(values["down_payment"]):
                    await op.totals.apply_payment(order.id, down_payment=values["down_payment"])
                    op.touch(ORDERS)

            result = await self._reload(op, order.id)

        return result

    async def set_item_received(
        self,
        order_id: int,
        item_id: int,
        is_received: bool,
        actor: Optional[User] = None,
    ) -> Order:
        async with self._operation(
            "set_item_received", _actor_id(actor), order_id=order_id, item_id=item_id
        ) as op:
            order = await self._lock_order(op, order_id)
            item = order.find_item(item_id)
            if item is None:
                raise OrderNotFoundError(
                    "Order item not found", order_id=order_id, order_item_id=item_id
                )

            self._flip_gate(
                op, order, item, "is_received", HistoryField.ITEM_RECEIVED, is_received
            )
            result = await self._reload(op, order.id)

        return result

    async def set_component_received(
        self,
        order_id: int,
        component_id: int,
        is_received: bool,
        actor: Optional[User] = None,
    ) -> Order:
        async with self._operation(
            "set_component_received",
            _actor_id(actor),
            order_id=order_id,
            component_id=component_id,
        ) as op:
            order = await self._lock_order(op, order_id)
            component = await op.repository.get_component(order.id, component_id)
            if component is None:
                raise OrderNotFoundError(
                    "Item component not found",
                    order_id=order_id,
                    component_id=component_id,
                )

            self._flip_gate(
                op,
                order,
                component,
                "is_received",
                HistoryField.ITEM_COMPONENT_RECEIVED,
                is_received,
            )
            result = await self._reload(op, order.id)

        return result

    async def add_attachment(
        self,
        order_id: int,
        file_name: str,
        file_path: str,
        mime_type: Optional[str] = None,
        file_size: Optional[int] = None,
        actor: Optional[User] = None,
    ) -> Order:
        """
        Record metadata for a file uploaded to an order.

        An ``attachments`` history row carrying the file name is written
        alongside, which is what timeline views correlate on.
        """
        if not file_name or not file_path:
            raise OrderValidationError(
                "File name and path are required", order_id=order_id
            )
        if file_size is not None and file_size < 0:
            raise OrderValidationError("File size cannot be negative", order_id=order_id)

        actor_id = _actor_id(actor)
        async with self._operation(
            "add_attachment", actor_id, order_id=order_id, file_name=file_name
        ) as op:
            order = await self._lock_order(op, order_id)
            op.repository.add(
                Attachment(
                    order_id=order.id,
                    file_name=file_name,
                    file_path=file_path,
                    mime_type=mime_type,
                    file_size=file_size,
                    uploaded_by=actor_id,
                )
            )
            op.recorder.record_entry(
                order, HistoryField.ATTACHMENTS, None, file_name, actor_id=actor_id
            )
            op.touch(ORDERS, ORDER_HISTORIES, ATTACHMENTS)
            result = await self._reload(op, order.id)

        return result

    async def delete_order(self, order_id: int, actor: Optional[User] = None) -> None:
        """Soft delete an order; it is treated as missing afterwards."""
        actor_id = _actor_id(actor)
        async with self._operation("delete_order", actor_id, order_id=order_id) as op:
            order = await self._lock_order(op, order_id)
            if actor_id is not None:
                order.updated_by = actor_id
            order.soft_delete()
            op.touch(ORDERS)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: int) -> Order:
        async with self.session_factory() as session:
            order = await OrderRepository(session).get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    async def get_order_by_uuid(self, order_uuid: UUID) -> Order:
        async with self.session_factory() as session:
            order = await OrderRepository(session).get_order_by_uuid(order_uuid)
        if order is None:
            raise OrderNotFoundError(
                "Order not found", order_uuid=str(order_uuid)
            )
        return order

    async def list_history(
        self,
        order_id: Optional[int] = None,
        field: Optional[Union[HistoryField, str]] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[OrderHistory]:
        """
        History rows filtered by order, field and date range, newest first.
        """
        field_changed = field.value if isinstance(field, HistoryField) else field
        async with self.session_factory() as session:
            return await OrderRepository(session).list_history(
                order_id=order_id,
                field_changed=field_changed,
                from_date=from_date,
                to_date=to_date,
                limit=limit,
            )

    async def history_timeline(self, order_id: int) -> list[dict[str, Any]]:
        """
        Described history rows for one order, newest first, with the
        attachments each upload row most likely refers to.
        """
        async with self.session_factory() as session:
            repository = OrderRepository(session)
            order = await repository.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)

            entries = await repository.list_history(order_id=order_id)
            attachments = await repository.get_attachments(order_id)
            category_ids = {category.id for category in order.categories}
            for entry in entries:
                if entry.field_changed == HistoryField.CATEGORIES.value:
                    for raw in (entry.old_value, entry.new_value):
                        category_ids.update(_category_set.parse(raw))
            names = await repository.get_category_names(sorted(category_ids))

        return [
            history_entry_payload(
                entry,
                attachments,
                category_names=names,
                window_seconds=self.attachment_window_seconds,
            )
            for entry in entries
        ]


def get_order_lifecycle_service(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    cache_versions: Optional[CacheVersionStore] = None,
    notifications: Optional[NotificationDispatcher] = None,
) -> OrderLifecycleService:
    """
    Build the lifecycle service with production collaborators by default.

    Args:
        session_factory: Session factory (defaults to the shared one)
        cache_versions: Version store (defaults to Redis)
        notifications: Dispatcher (defaults to the Celery-backed one)
    """
    return OrderLifecycleService(
        session_factory=session_factory or get_session_factory(),
        cache_versions=cache_versions or RedisCacheVersionStore(),
        notifications=notifications or get_notification_dispatcher(),
    )
