"""
Declarative base classes for the billing tables.

Every row gets a uuid4 string primary key. TrackedBase adds created/updated
timestamps. Monetary columns are BigInteger minor units, never floats.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base for all models."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)


class TrackedBase(Base):
    """Abstract base with audit timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
