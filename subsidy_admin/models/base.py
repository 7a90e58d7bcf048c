"""
Declarative base and shared mixins for ORM models.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base holding the shared metadata."""


class BaseModel(Base):
    """Abstract base for all tables."""

    __abstract__ = True

    def to_dict(self) -> dict:
        """Column values keyed by attribute name."""
        return {
            column.key: getattr(self, column.key)
            for column in self.__table__.columns
        }


class TimestampMixin:
    """Adds created_at / updated_at columns maintained on the Python side."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        comment="Record creation timestamp"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        comment="Last modification timestamp"
    )
