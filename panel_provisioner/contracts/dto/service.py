from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ServiceStatus(str, Enum):
    """Service record lifecycle."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


# Statuses in which a remote server must exist.
STATUSES_WITH_SERVER = frozenset({ServiceStatus.ACTIVE, ServiceStatus.SUSPENDED})


def utcnow() -> datetime:
    return datetime.now(UTC)


class ServiceRecord(BaseModel):
    """One provisioned (or to-be-provisioned) server per order."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    client_id: int
    status: ServiceStatus = ServiceStatus.PENDING
    remote_server_id: int | None = None
    remote_server_identifier: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_remote_id_invariant(self) -> "ServiceRecord":
        has_server = self.remote_server_id is not None
        if has_server != (self.status in STATUSES_WITH_SERVER):
            raise ValueError(
                f"remote_server_id must be set iff status is active or suspended "
                f"(status={self.status.value}, remote_server_id={self.remote_server_id})"
            )
        return self

    @property
    def has_server(self) -> bool:
        return self.remote_server_id is not None

    def transition(self, **changes: Any) -> "ServiceRecord":
        """Return a validated copy with ``changes`` applied and a fresh ``updated_at``."""
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = utcnow()
        return ServiceRecord.model_validate(data)
