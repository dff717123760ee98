"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
The store is authoritative for product lifetime; the cache only ever holds
a derived JSON snapshot of these rows.
"""

from typing import Optional

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Product(Base):
    """A catalog entry. Created only through the write path, never mutated.

    Learn: sqlite_autoincrement makes SQLite use AUTOINCREMENT, so ids are
    strictly increasing and never reused even after rows disappear.
    PostgreSQL gets a SERIAL column with the same guarantee.
    """

    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}
