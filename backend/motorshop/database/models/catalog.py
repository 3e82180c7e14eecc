"""
Service catalog reference data.

Each entry is a billable machining service (e.g., "resurface cylinder
head") priced for one item type. Order services snapshot the catalog
prices at budgeting time, so later price edits never change an existing
budget.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from motorshop.core.config import get_settings
from motorshop.database.base import BaseModel, enum_type
from motorshop.services.orders.enums import OrderItemType

CENTS = Decimal("0.01")


def net_price_for(base_price: Decimal, tax_percentage: Decimal) -> Decimal:
    """
    Price including tax, rounded half-up to cents.

    Example:
        >>> net_price_for(Decimal("600.00"), Decimal("16.00"))
        Decimal('696.00')
    """
    gross = Decimal(base_price) * (1 + Decimal(tax_percentage) / 100)
    return gross.quantize(CENTS, rounding=ROUND_HALF_UP)


class ServiceCatalog(BaseModel):
    """
    Catalog entry for a machining service.

    Attributes:
        service_key: Stable unique key referenced by order services
        service_name_key: Translation key for the display name
        item_type: Item type the service applies to
        base_price: Price before tax
        tax_percentage: Tax rate in percent
        requires_measurement: Whether budgeting must record a measurement
        is_active: Inactive services cannot be budgeted
        display_order: Sort position in catalog listings
    """

    __tablename__ = "service_catalog"

    service_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Unique service key",
    )

    service_name_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Translation key for the service name",
    )

    item_type: Mapped[OrderItemType] = mapped_column(
        enum_type(OrderItemType, "order_item_type"),
        nullable=False,
        comment="Item type this service applies to",
    )

    base_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Price before tax",
    )

    tax_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=lambda: get_settings().default_tax_percentage,
        comment="Tax rate in percent",
    )

    requires_measurement: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether a measurement must be captured when budgeting",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the service can be budgeted",
    )

    display_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Sort position within the item type",
    )

    __table_args__ = (
        Index("ix_service_catalog_item_type_active", "item_type", "is_active"),
        CheckConstraint("base_price >= 0", name="ck_service_catalog_base_price"),
        CheckConstraint(
            "tax_percentage >= 0", name="ck_service_catalog_tax_percentage"
        ),
    )

    @property
    def net_price(self) -> Decimal:
        return net_price_for(self.base_price, self.tax_percentage)
