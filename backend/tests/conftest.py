"""
Pytest configuration and shared test fixtures.

Integration fixtures run the lifecycle service against a temporary
SQLite database through aiosqlite, with an in-memory cache version store
and a notification sink that records what it is given.
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, Generator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from motorshop.core.config import Settings, get_settings
from motorshop.database.base import Base
from motorshop.database.connection import create_engine, create_session_factory
from motorshop.database.models import (
    Category,
    NotificationEvent,
    ServiceCatalog,
    User,
    UserRole,
)
from motorshop.services.cache.versions import InMemoryCacheVersionStore
from motorshop.services.notifications.service import (
    NotificationDispatcher,
    NotificationSink,
    OrderNotification,
)
from motorshop.services.orders.enums import OrderItemType
from motorshop.services.orders.service import OrderLifecycleService


class RecordingNotificationSink(NotificationSink):
    """Notification sink that keeps every notification it receives."""

    def __init__(self) -> None:
        self.sent: list[OrderNotification] = []

    def notify(
        self,
        user_ids: list[int],
        event: NotificationEvent,
        payload: dict[str, Any],
    ) -> None:
        self.sent.append(OrderNotification(list(user_ids), event, dict(payload)))

    def events(self) -> list[NotificationEvent]:
        return [notification.event for notification in self.sent]

    def audit_events(self) -> list[str]:
        return [
            notification.payload["audit_event"]
            for notification in self.sent
            if notification.event == NotificationEvent.ORDER_AUDIT
        ]


@dataclass
class ShopData:
    """Reference rows seeded for integration tests."""

    admin: User
    super_admin: User
    inactive_admin: User
    employee: User
    customer: User
    categories: list[Category]
    inactive_category: Category


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[Settings, None, None]:
    """
    Force the test environment for every test.

    Yields:
        Settings: Fresh settings built from the patched environment
    """
    monkeypatch.setenv("MOTORSHOP_ENVIRONMENT", "test")
    monkeypatch.setenv("MOTORSHOP_NOTIFICATIONS_ENABLED", "true")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a file-backed SQLite engine with all tables.

    A file database lets concurrent sessions use separate connections.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'motorshop.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def shop(session_factory: async_sessionmaker[AsyncSession]) -> ShopData:
    """
    Seed users, categories and the service catalog.

    Catalog entries:
        cylinder_head_resurface: 600.00 + 16% = 696.00
        engine_block_hone: 517.59 + 16% = 600.40
        engine_block_align_bore: 562.41 + 16% = 652.40, needs a measurement
        crankshaft_polish: inactive
    """
    async with session_factory() as session:
        async with session.begin():
            admin = User(name="Ada Admin", email="admin@shop.test", role=UserRole.ADMINISTRATOR)
            super_admin = User(
                name="Sam Super",
                email="super@shop.test",
                role=UserRole.SUPER_ADMINISTRATOR,
            )
            inactive_admin = User(
                name="Ivy Inactive",
                email="inactive@shop.test",
                role=UserRole.ADMINISTRATOR,
                is_active=False,
            )
            employee = User(name="Eli Employee", email="employee@shop.test", role=UserRole.EMPLOYEE)
            customer = User(name="Cam Customer", email="customer@shop.test", role=UserRole.CUSTOMER)
            categories = [
                Category(name="Gasoline"),
                Category(name="Diesel"),
                Category(name="Express"),
            ]
            inactive_category = Category(name="Retired", is_active=False)

            session.add_all(
                [admin, super_admin, inactive_admin, employee, customer, inactive_category]
            )
            session.add_all(categories)
            session.add_all(
                [
                    ServiceCatalog(
                        service_key="cylinder_head_resurface",
                        service_name_key="services.cylinder_head_resurface",
                        item_type=OrderItemType.CYLINDER_HEAD,
                        base_price=Decimal("600.00"),
                        tax_percentage=Decimal("16.00"),
                    ),
                    ServiceCatalog(
                        service_key="engine_block_hone",
                        service_name_key="services.engine_block_hone",
                        item_type=OrderItemType.ENGINE_BLOCK,
                        base_price=Decimal("517.59"),
                        tax_percentage=Decimal("16.00"),
                    ),
                    ServiceCatalog(
                        service_key="engine_block_align_bore",
                        service_name_key="services.engine_block_align_bore",
                        item_type=OrderItemType.ENGINE_BLOCK,
                        base_price=Decimal("562.41"),
                        tax_percentage=Decimal("16.00"),
                        requires_measurement=True,
                    ),
                    ServiceCatalog(
                        service_key="crankshaft_polish",
                        service_name_key="services.crankshaft_polish",
                        item_type=OrderItemType.CRANKSHAFT,
                        base_price=Decimal("250.00"),
                        tax_percentage=Decimal("16.00"),
                        is_active=False,
                    ),
                ]
            )

    return ShopData(
        admin=admin,
        super_admin=super_admin,
        inactive_admin=inactive_admin,
        employee=employee,
        customer=customer,
        categories=categories,
        inactive_category=inactive_category,
    )


@pytest.fixture
def notification_sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def cache_versions() -> InMemoryCacheVersionStore:
    return InMemoryCacheVersionStore()


@pytest.fixture
def lifecycle_service(
    session_factory: async_sessionmaker[AsyncSession],
    cache_versions: InMemoryCacheVersionStore,
    notification_sink: RecordingNotificationSink,
) -> OrderLifecycleService:
    """Lifecycle service wired to the test database and in-memory collaborators."""
    return OrderLifecycleService(
        session_factory=session_factory,
        cache_versions=cache_versions,
        notifications=NotificationDispatcher(notification_sink),
    )


@pytest.fixture
def order_payload(shop: ShopData) -> dict[str, Any]:
    """
    Intake payload with a cylinder head (with components) and an engine
    block (without components).
    """
    return {
        "customer_id": shop.customer.id,
        "title": "Rebuild 5.7L V8",
        "description": "Customer reports low compression on cylinder 3",
        "priority": "High",
        "assigned_to": shop.employee.id,
        "category_ids": [shop.categories[2].id, shop.categories[0].id],
        "motor_info": {
            "brand": "Chevrolet",
            "liters": "5.7",
            "year": "1998",
            "model": "Vortec",
            "cylinder_count": "8",
        },
        "items": [
            {"item_type": "cylinder_head", "components": ["valves", "springs"]},
            {"item_type": "engine_block", "components": []},
        ],
    }
