"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class EntitlementFlag(Base):
    """
    ORM model for the entitlement_flags table.

    A namespaced boolean key-value pair, e.g. "Purchased-DigitalSodaPop" -> True.
    """

    __tablename__ = "entitlement_flags"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<EntitlementFlag(key={self.key}, value={self.value})>"
