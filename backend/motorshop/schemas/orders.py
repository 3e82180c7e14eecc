"""
Order lifecycle Pydantic schemas for input validation.

These schemas validate the payloads the lifecycle service accepts: order
intake with motor details and items, budget entries, and partial order
updates.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from motorshop.services.orders.enums import (
    OrderItemType,
    OrderPriority,
    OrderStatus,
)


class MotorInfoCreate(BaseModel):
    """Engine details captured at intake."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    brand: Optional[str] = Field(None, max_length=100, description="Engine brand")
    liters: Optional[str] = Field(None, max_length=20, description="Displacement")
    year: Optional[str] = Field(None, max_length=10, description="Model year")
    model: Optional[str] = Field(None, max_length=100, description="Engine model")
    cylinder_count: Optional[str] = Field(
        None,
        max_length=20,
        description="Number of cylinders",
    )
    down_payment: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        decimal_places=2,
        description="Amount paid up front",
    )
    center_torque: Optional[str] = Field(None, max_length=50)
    rod_torque: Optional[str] = Field(None, max_length=50)
    first_gap: Optional[str] = Field(None, max_length=50)
    second_gap: Optional[str] = Field(None, max_length=50)
    third_gap: Optional[str] = Field(None, max_length=50)
    center_clearance: Optional[str] = Field(None, max_length=50)
    rod_clearance: Optional[str] = Field(None, max_length=50)


class OrderItemCreate(BaseModel):
    """Engine part brought in with the order and its checked-in components."""

    model_config = ConfigDict(validate_assignment=True)

    item_type: OrderItemType = Field(..., description="Engine part type")
    components: list[str] = Field(
        default_factory=list,
        description="Component names received with the part",
    )

    @model_validator(mode="after")
    def validate_components(self) -> "OrderItemCreate":
        """Components must belong to the item type and appear once."""
        allowed = self.item_type.components()
        unknown = [name for name in self.components if name not in allowed]
        if unknown:
            raise ValueError(
                f"Components {unknown} are not valid for {self.item_type.value}"
            )
        if len(set(self.components)) != len(self.components):
            raise ValueError("Duplicate components are not allowed")
        return self


class OrderCreate(BaseModel):
    """Order intake payload."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    customer_id: int = Field(..., gt=0, description="Customer user ID")
    title: str = Field(..., min_length=1, max_length=255, description="Order title")
    description: str = Field(default="", description="Order description")
    priority: OrderPriority = Field(
        default=OrderPriority.NORMAL,
        description="Order priority",
    )
    assigned_to: Optional[int] = Field(None, gt=0, description="Assigned employee")
    estimated_completion: Optional[datetime] = Field(
        None,
        description="Estimated completion time",
    )
    notes: Optional[str] = Field(None, description="Free-text notes")
    category_ids: list[int] = Field(
        default_factory=list,
        description="Category IDs",
    )
    motor_info: MotorInfoCreate = Field(
        default_factory=MotorInfoCreate,
        description="Engine details",
    )
    items: list[OrderItemCreate] = Field(
        ...,
        min_length=1,
        description="Engine parts received",
    )

    @field_validator("category_ids")
    @classmethod
    def validate_category_ids(cls, v: list[int]) -> list[int]:
        """Drop duplicate category IDs, keeping first occurrence."""
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_unique_item_types(self) -> "OrderCreate":
        """Each item type may appear only once per order."""
        item_types = [item.item_type for item in self.items]
        if len(set(item_types)) != len(item_types):
            raise ValueError("Duplicate item types are not allowed")
        return self


class BudgetServiceEntry(BaseModel):
    """One quoted service for an order item."""

    model_config = ConfigDict(str_strip_whitespace=True)

    order_item_id: int = Field(..., gt=0, description="Order item ID")
    service_key: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Service catalog key",
    )
    measurement: Optional[str] = Field(
        None,
        max_length=50,
        description="Measurement required by some services",
    )

    @field_validator("measurement")
    @classmethod
    def validate_measurement(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank measurements as missing."""
        return v or None


class OrderUpdate(BaseModel):
    """
    Partial order update.

    Only fields explicitly set are applied; use
    ``model_dump(exclude_unset=True)`` to read them.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[OrderPriority] = None
    assigned_to: Optional[int] = Field(None, gt=0)
    estimated_completion: Optional[datetime] = None
    actual_completion: Optional[datetime] = None
    notes: Optional[str] = None
    category_ids: Optional[list[int]] = None
    status: Optional[OrderStatus] = None
    down_payment: Optional[Decimal] = Field(None, ge=0, decimal_places=2)

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: object) -> object:
        """Accept status values or member names in any case."""
        if isinstance(v, str):
            return OrderStatus.from_string(v)
        return v

    @field_validator("category_ids")
    @classmethod
    def validate_category_ids(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is None:
            return v
        return list(dict.fromkeys(v))
