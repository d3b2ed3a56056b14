"""Panel service record table."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from panel_provisioner.contracts.dto import ServiceStatus

from .base import Base


class PanelService(Base):
    """One row per billing order backed by a panel server.

    Rows are never deleted; teardown sets ``status`` to ``deleted`` and
    clears the server columns.
    """

    __tablename__ = "service_panel"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(Integer, index=True)

    # Admin API id (used for calls) and short identifier (used in panel URLs)
    server_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    server_identifier: Mapped[str | None] = mapped_column(String(36), nullable=True)

    status: Mapped[str] = mapped_column(String(50), default=ServiceStatus.PENDING.value)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
