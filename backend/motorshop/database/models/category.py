"""
Order category model and the order/category association table.
"""

from sqlalchemy import Boolean, Column, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from motorshop.database.base import Base, BaseModel


order_category = Table(
    "order_category",
    Base.metadata,
    Column(
        "order_id",
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "category_id",
        ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Category(BaseModel):
    """Label used to group orders (e.g., "Diesel", "Warranty")."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Category name",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the category can be assigned",
    )
