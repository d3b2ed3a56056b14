"""Typed views of the billing entities the engine reads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Client(BaseModel):
    """Billing customer owning the order."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Product(BaseModel):
    """Billing product with its default server configuration."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class Order(BaseModel):
    """Billing order driving one service record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    product_id: int | None = None
    title: str | None = None
    status: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    service_id: int | None = None
