"""Database models package."""

from .base import Base
from .service import PanelService

__all__ = ["Base", "PanelService"]
