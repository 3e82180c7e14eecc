"""
SQLAlchemy declarative base and common model mixins.

Timestamps are assigned on the Python side so their values are known
right after a flush without an extra round-trip, which matters under
the async session where implicit refreshes are not allowed.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from motorshop.core.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are interpreted as UTC; SQLite hands timestamps back
    without tzinfo.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all models with async attribute loading.
    """

    def __repr__(self) -> str:
        pk_values = []
        for column in self.__table__.primary_key.columns:
            value = getattr(self, column.name, None)
            if value is not None:
                pk_values.append(f"{column.name}={value!r}")

        pk_str = ", ".join(pk_values) if pk_values else "transient"
        return f"<{self.__class__.__name__}({pk_str})>"


class IntegerIdMixin:
    """Autoincrementing integer primary key."""

    @declared_attr
    def id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            primary_key=True,
            autoincrement=True,
            comment="Surrogate identifier for the record",
        )


class TimestampMixin:
    """
    Mixin for created_at/updated_at bookkeeping.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            index=True,
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            onupdate=utcnow,
            comment="Timestamp when record was last updated",
        )


class SoftDeleteMixin:
    """
    Mixin for soft delete functionality.

    Rows are flagged with deleted_at instead of being removed, keeping
    their audit history reachable.
    """

    @declared_attr
    def deleted_at(cls) -> Mapped[Optional[datetime]]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=True,
            default=None,
            comment="Timestamp when record was soft deleted",
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Mark record as deleted."""
        if self.deleted_at is None:
            self.deleted_at = utcnow()
            logger.info(
                "Record soft deleted",
                model=self.__class__.__name__,
                record_id=getattr(self, "id", None),
            )


class AuditMixin:
    """
    Mixin recording which user created and last updated a row.

    Both references are nullable: system-initiated writes carry no actor.
    """

    @declared_attr
    def created_by(cls) -> Mapped[Optional[int]]:
        return mapped_column(
            ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
            comment="User who created the record",
        )

    @declared_attr
    def updated_by(cls) -> Mapped[Optional[int]]:
        return mapped_column(
            ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
            comment="User who last updated the record",
        )


class BaseModel(Base, IntegerIdMixin, TimestampMixin):
    """
    Base model with integer primary key and timestamps.
    """

    __abstract__ = True


class AuditedModel(BaseModel, AuditMixin, SoftDeleteMixin):
    """
    Base model with timestamps, actor references and soft delete.

    Example:
        class Order(AuditedModel):
            __tablename__ = "orders"

            title: Mapped[str] = mapped_column(String(255))
    """

    __abstract__ = True


def enum_type(enum_cls: type[enum.Enum], name: str) -> SQLEnum:
    """
    Column type persisting an enum by its value rather than its name.

    Stored values double as audit-trail strings, so the value is the
    contract, not the Python member name.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )
