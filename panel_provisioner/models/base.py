"""Declarative base for the provisioner tables."""

from typing import Any

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> dict[str, Any]:
        """Column values keyed by column name."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}
