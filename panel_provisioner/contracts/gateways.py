"""Interfaces the engine consumes from the billing system."""

from typing import Any, Protocol

from .dto import Client, Order, ServiceRecord


class BillingGateway(Protocol):
    """Read access to billing orders and clients."""

    def get_existing_order_by_id(self, order_id: int) -> Order:
        """Return the order or raise if it does not exist."""
        ...

    def get_order_service_record(self, order: Order) -> ServiceRecord | None:
        """Return the service record linked to an order."""
        ...

    def get_client_by_id(self, client_id: int) -> Client | None:
        ...


class SettingsStore(Protocol):
    """Global key/value settings of the billing system."""

    def get_param_value(self, key: str, default: Any = None) -> Any:
        ...

    def set_param_value(self, key: str, value: Any) -> None:
        ...


class ServiceRecordStore(Protocol):
    """Persistence for service records."""

    def add(self, record: ServiceRecord) -> ServiceRecord:
        """Insert a new record and return it with its assigned id."""
        ...

    def save(self, record: ServiceRecord) -> ServiceRecord:
        """Persist changes to an existing record."""
        ...

    def get(self, record_id: int) -> ServiceRecord | None:
        ...
