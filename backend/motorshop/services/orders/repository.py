"""
Order data access for the lifecycle service.

The repository runs queries on the session it is given and never commits
or rolls back: the calling lifecycle operation owns the transaction.
Database failures are wrapped in ``OrderRepositoryError`` with query
context for structured logging.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from motorshop.core.logging import get_logger
from motorshop.database.models import (
    Attachment,
    Category,
    Order,
    OrderHistory,
    OrderItem,
    OrderItemComponent,
    OrderMotorInfo,
    OrderService,
    ServiceCatalog,
    User,
    UserRole,
)
from motorshop.services.orders.errors import OrderPersistenceError

logger = get_logger(__name__)


class OrderRepositoryError(OrderPersistenceError):
    """Raised when an order query fails."""

    pass


def _aggregate_options() -> list[Any]:
    return [
        selectinload(Order.items).selectinload(OrderItem.components),
        selectinload(Order.items).selectinload(OrderItem.services),
        selectinload(Order.motor_info),
        selectinload(Order.categories),
        selectinload(Order.history),
        selectinload(Order.attachments),
    ]


class OrderRepository:
    """
    Repository for order aggregate queries.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session owned by the caller
        """
        self.session = session

    async def _scalar(self, stmt: Any, action: str, **context: Any) -> Any:
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}", error=str(e), **context)
            raise OrderRepositoryError(
                f"Failed to {action}", error=str(e), **context
            ) from e

    async def _scalars(self, stmt: Any, action: str, **context: Any) -> list[Any]:
        try:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}", error=str(e), **context)
            raise OrderRepositoryError(
                f"Failed to {action}", error=str(e), **context
            ) from e

    async def get_order(
        self,
        order_id: int,
        for_update: bool = False,
        refresh: bool = False,
    ) -> Optional[Order]:
        """
        Load an order aggregate that has not been soft deleted.

        Args:
            order_id: Order identifier
            for_update: Lock the order row until the transaction ends
            refresh: Overwrite already-loaded state with fresh rows

        Returns:
            Order with items, components, services, motor info,
            categories, history and attachments loaded, or None
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id, Order.deleted_at.is_(None))
            .options(*_aggregate_options())
        )
        if for_update:
            stmt = stmt.with_for_update(of=Order)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)

        order = await self._scalar(stmt, "fetch order", order_id=order_id)
        logger.debug("Order fetched", order_id=order_id, found=order is not None)
        return order

    async def get_order_by_uuid(self, order_uuid: UUID) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.uuid == order_uuid, Order.deleted_at.is_(None))
            .options(*_aggregate_options())
        )
        return await self._scalar(
            stmt, "fetch order by uuid", order_uuid=str(order_uuid)
        )

    async def find_active_service_by_key(
        self, service_key: str
    ) -> Optional[ServiceCatalog]:
        """Catalog entry for ``service_key`` when it exists and is active."""
        stmt = select(ServiceCatalog).where(
            ServiceCatalog.service_key == service_key,
            ServiceCatalog.is_active.is_(True),
        )
        return await self._scalar(
            stmt, "fetch catalog service", service_key=service_key
        )

    async def get_order_services(
        self, order_id: int, service_ids: Sequence[int]
    ) -> list[OrderService]:
        """Services with the given ids that belong to the order, by id."""
        stmt = (
            select(OrderService)
            .join(OrderItem, OrderService.order_item_id == OrderItem.id)
            .where(OrderItem.order_id == order_id, OrderService.id.in_(service_ids))
            .order_by(OrderService.id)
        )
        return await self._scalars(
            stmt, "fetch order services", order_id=order_id, service_ids=list(service_ids)
        )

    async def get_component(
        self, order_id: int, component_id: int
    ) -> Optional[OrderItemComponent]:
        stmt = (
            select(OrderItemComponent)
            .join(OrderItem, OrderItemComponent.order_item_id == OrderItem.id)
            .where(OrderItem.order_id == order_id, OrderItemComponent.id == component_id)
        )
        return await self._scalar(
            stmt, "fetch item component", order_id=order_id, component_id=component_id
        )

    async def get_completed_net_prices(self, order_id: int) -> list[Decimal]:
        """Net prices of every completed service on the order."""
        stmt = (
            select(OrderService.net_price)
            .join(OrderItem, OrderService.order_item_id == OrderItem.id)
            .where(OrderItem.order_id == order_id, OrderService.is_completed.is_(True))
            .order_by(OrderService.id)
        )
        return await self._scalars(stmt, "fetch completed services", order_id=order_id)

    async def get_motor_info(self, order_id: int) -> Optional[OrderMotorInfo]:
        stmt = select(OrderMotorInfo).where(OrderMotorInfo.order_id == order_id)
        return await self._scalar(stmt, "fetch motor info", order_id=order_id)

    async def get_categories(self, category_ids: Sequence[int]) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.id.in_(category_ids), Category.is_active.is_(True))
            .order_by(Category.id)
        )
        return await self._scalars(
            stmt, "fetch categories", category_ids=list(category_ids)
        )

    async def get_category_names(self, category_ids: Sequence[int]) -> dict[int, str]:
        stmt = select(Category).where(Category.id.in_(category_ids))
        categories = await self._scalars(
            stmt, "fetch category names", category_ids=list(category_ids)
        )
        return {category.id: category.name for category in categories}

    async def get_existing_user_ids(self, user_ids: Sequence[int]) -> set[int]:
        stmt = select(User.id).where(User.id.in_(user_ids))
        return set(await self._scalars(stmt, "fetch users", user_ids=list(user_ids)))

    async def get_active_admin_ids(self) -> list[int]:
        """Ids of active administrators and super administrators."""
        stmt = (
            select(User.id)
            .where(User.role.in_(UserRole.admin_roles()), User.is_active.is_(True))
            .order_by(User.id)
        )
        return await self._scalars(stmt, "fetch administrators")

    async def get_attachments(self, order_id: int) -> list[Attachment]:
        stmt = (
            select(Attachment)
            .where(Attachment.order_id == order_id)
            .order_by(Attachment.id)
        )
        return await self._scalars(stmt, "fetch attachments", order_id=order_id)

    async def list_history(
        self,
        order_id: Optional[int] = None,
        field_changed: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[OrderHistory]:
        """
        History rows filtered by order, field and creation time.

        Args:
            order_id: Restrict to one order
            field_changed: Restrict to one field identifier
            from_date: Inclusive lower bound on created_at
            to_date: Inclusive upper bound on created_at
            limit: Maximum rows to return

        Returns:
            Matching rows, newest first
        """
        stmt = select(OrderHistory)
        if order_id is not None:
            stmt = stmt.where(OrderHistory.order_id == order_id)
        if field_changed is not None:
            stmt = stmt.where(OrderHistory.field_changed == field_changed)
        if from_date is not None:
            stmt = stmt.where(OrderHistory.created_at >= from_date)
        if to_date is not None:
            stmt = stmt.where(OrderHistory.created_at <= to_date)
        stmt = stmt.order_by(OrderHistory.created_at.desc(), OrderHistory.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        return await self._scalars(
            stmt,
            "list order history",
            order_id=order_id,
            field_changed=field_changed,
        )

    def add(self, instance: Any) -> None:
        self.session.add(instance)

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except StaleDataError:
            raise
        except SQLAlchemyError as e:
            logger.error("Failed to flush order changes", error=str(e))
            raise OrderRepositoryError(
                "Failed to flush order changes", error=str(e)
            ) from e
