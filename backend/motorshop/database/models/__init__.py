"""
ORM models.

Importing this package registers every mapped class on ``Base.metadata``.
"""

from motorshop.database.models.attachment import Attachment
from motorshop.database.models.catalog import ServiceCatalog
from motorshop.database.models.category import Category, order_category
from motorshop.database.models.history import OrderHistory
from motorshop.database.models.notification import (
    NotificationEvent,
    NotificationLog,
    NotificationStatus,
)
from motorshop.database.models.order import (
    Order,
    OrderItem,
    OrderItemComponent,
    OrderMotorInfo,
    OrderService,
)
from motorshop.database.models.user import User, UserRole

__all__ = [
    "Attachment",
    "Category",
    "NotificationEvent",
    "NotificationLog",
    "NotificationStatus",
    "Order",
    "OrderHistory",
    "OrderItem",
    "OrderItemComponent",
    "OrderMotorInfo",
    "OrderService",
    "ServiceCatalog",
    "User",
    "UserRole",
    "order_category",
]
