"""
Repair order aggregate models.

An Order owns its items (one per item type), each item owns its checked-in
components and budgeted services, and the order has exactly one motor-info
row holding engine data and payment totals. History rows and attachments
hang off the order but are written through their own paths, so the
collections here are read-only views.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from motorshop.database.base import AuditedModel, BaseModel, enum_type
from motorshop.database.models.category import Category, order_category
from motorshop.services.orders.enums import (
    OrderItemType,
    OrderPriority,
    OrderStatus,
)

if TYPE_CHECKING:
    from motorshop.database.models.attachment import Attachment
    from motorshop.database.models.history import OrderHistory


class Order(AuditedModel):
    """
    Repair order.

    Attributes:
        uuid: Opaque identifier shared outside the shop
        customer_id: Customer who owns the engine
        title: Short summary
        description: Work requested
        status: Lifecycle status, changed only through the transition table
        priority: Scheduling priority
        assigned_to: Employee responsible for the work
        estimated_completion: Promised completion time
        actual_completion: Time work was finished
        notes: Free-text notes
        version: Optimistic concurrency counter
    """

    __tablename__ = "orders"

    uuid: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        unique=True,
        default=uuid4,
        comment="Externally shareable order identifier",
    )

    customer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Customer who owns the order",
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Order title",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Work requested by the customer",
    )

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.RECEIVED,
        comment="Current lifecycle status",
    )

    priority: Mapped[OrderPriority] = mapped_column(
        enum_type(OrderPriority, "order_priority"),
        nullable=False,
        default=OrderPriority.NORMAL,
        comment="Scheduling priority",
    )

    assigned_to: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Employee assigned to the order",
    )

    estimated_completion: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Estimated completion time",
    )

    actual_completion: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Actual completion time",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Free-text notes",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Optimistic concurrency counter",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    motor_info: Mapped[Optional["OrderMotorInfo"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )

    categories: Mapped[list[Category]] = relationship(
        secondary=order_category,
        lazy="selectin",
        order_by=Category.id,
    )

    history: Mapped[list["OrderHistory"]] = relationship(
        lazy="selectin",
        viewonly=True,
        order_by="OrderHistory.id",
    )

    attachments: Mapped[list["Attachment"]] = relationship(
        lazy="selectin",
        viewonly=True,
        order_by="Attachment.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_customer_status", "customer_id", "status"),
        Index("ix_orders_active", "status", "deleted_at"),
    )

    def find_item(self, item_id: int) -> Optional["OrderItem"]:
        return next((item for item in self.items if item.id == item_id), None)

    @property
    def services(self) -> list["OrderService"]:
        """All services across items, in item order."""
        return [service for item in self.items for service in item.services]


class OrderItem(BaseModel):
    """
    Physical part received with an order; unique per (order, item_type).
    """

    __tablename__ = "order_items"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning order",
    )

    item_type: Mapped[OrderItemType] = mapped_column(
        enum_type(OrderItemType, "order_item_type"),
        nullable=False,
        comment="Kind of engine part",
    )

    is_received: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the part is physically in the shop",
    )

    order: Mapped[Order] = relationship(back_populates="items")

    components: Mapped[list["OrderItemComponent"]] = relationship(
        back_populates="order_item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItemComponent.id",
    )

    services: Mapped[list["OrderService"]] = relationship(
        back_populates="order_item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderService.id",
    )

    __table_args__ = (
        UniqueConstraint("order_id", "item_type", name="uq_order_items_order_type"),
    )


class OrderItemComponent(BaseModel):
    """Sub-part checked in with an item (e.g., valves on a cylinder head)."""

    __tablename__ = "order_item_components"

    order_item_id: Mapped[int] = mapped_column(
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning order item",
    )

    component_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Component name from the item type's component list",
    )

    is_received: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the component is physically in the shop",
    )

    order_item: Mapped[OrderItem] = relationship(back_populates="components")

    __table_args__ = (
        UniqueConstraint(
            "order_item_id",
            "component_name",
            name="uq_order_item_components_item_name",
        ),
    )


class OrderService(BaseModel):
    """
    Billable work on one item, priced from one catalog entry.

    The three gates move forward in order (budgeted, authorized,
    completed); prices are snapshotted when the service is budgeted.
    """

    __tablename__ = "order_services"

    order_item_id: Mapped[int] = mapped_column(
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        comment="Item the service is performed on",
    )

    service_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Service catalog key",
    )

    measurement: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Measurement captured while budgeting",
    )

    is_budgeted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Included in the quotation",
    )

    is_authorized: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Approved by the customer",
    )

    is_completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Work finished",
    )

    base_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Catalog base price at budgeting time",
    )

    net_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Catalog price with tax at budgeting time",
    )

    order_item: Mapped[OrderItem] = relationship(back_populates="services")

    __table_args__ = (
        UniqueConstraint(
            "order_item_id",
            "service_key",
            name="uq_order_services_item_key",
        ),
        Index("ix_order_services_completed", "order_item_id", "is_completed"),
    )


class OrderMotorInfo(BaseModel):
    """
    Engine data and payment totals, one row per order.

    total_cost and is_fully_paid are derived; see
    ``motorshop.services.orders.totals``.
    """

    __tablename__ = "order_motor_info"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="Owning order",
    )

    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    liters: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    year: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cylinder_count: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    down_payment: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Amount paid up front",
    )

    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Sum of completed service net prices",
    )

    is_fully_paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
        comment="down_payment >= total_cost",
    )

    center_torque: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rod_torque: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    first_gap: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    second_gap: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    third_gap: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    center_clearance: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rod_clearance: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    order: Mapped[Order] = relationship(back_populates="motor_info")

    __table_args__ = (
        CheckConstraint("down_payment >= 0", name="ck_order_motor_info_down_payment"),
        CheckConstraint("total_cost >= 0", name="ck_order_motor_info_total_cost"),
    )

    @property
    def remaining_balance(self) -> Decimal:
        return max(Decimal("0.00"), self.total_cost - self.down_payment)
