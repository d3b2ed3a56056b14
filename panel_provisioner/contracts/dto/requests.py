"""Request structs for operations invoked by the billing request layer."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class UpdateServerRequest(BaseModel):
    """Merge ``config`` into a service's stored config and push new limits."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    order_id: int = Field(..., gt=0)
    config: dict[str, Any] = Field(default_factory=dict)


class PasswordChangeRequest(BaseModel):
    """Set a new panel password for the owner of an order's server."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    order_id: int = Field(..., gt=0)
    password: StrictStr = Field(..., min_length=8)

    @field_validator("password")
    @classmethod
    def password_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("password must not be blank")
        return v


class StartupVariablesUpdate(BaseModel):
    """Merge environment values into a server's startup configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    order_id: int = Field(..., gt=0)
    variables: dict[str, str | int | bool] = Field(..., min_length=1)
