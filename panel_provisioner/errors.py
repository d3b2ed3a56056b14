"""Error taxonomy for the provisioning engine.

Transport and panel failures derive from `ApiError`, placement failures from
`PlacementError`. `ProvisionFailedError` wraps whatever aborted a provision run.
"""

from typing import Any


class ProvisionerError(Exception):
    """Base exception for all provisioning errors."""


# ── Panel API ────────────────────────────────────────────────────


class ApiError(ProvisionerError):
    """Base exception for panel API failures."""


class ApiConnectionError(ApiError):
    """Transport-level failure (refused connection, timeout, TLS error)."""

    def __init__(self, cause: Exception, *, method: str = "", path: str = "") -> None:
        self.cause = cause
        self.method = method
        self.path = path
        target = f" ({method} {path})" if method else ""
        super().__init__(f"Panel API connection failed{target}: {cause}")


class RemoteError(ApiError):
    """Panel answered with HTTP status >= 400."""

    def __init__(
        self,
        http_status: int,
        details: list[dict[str, Any]] | None = None,
        *,
        method: str = "",
        path: str = "",
    ) -> None:
        self.http_status = http_status
        self.details = details or []
        self.method = method
        self.path = path

        message = f"Panel API request failed with HTTP code: {http_status}"
        if self.details:
            parts = [
                str(item.get("detail") or item.get("code") or "Unknown error")
                for item in self.details
            ]
            message += " - Details: " + ", ".join(parts)
        super().__init__(message)


class RemoteNotFoundError(RemoteError):
    """Panel resource does not exist (404)."""


# ── Placement ────────────────────────────────────────────────────


class PlacementError(ProvisionerError):
    """Base exception for node/allocation placement failures."""


class NoSuitableNodeError(PlacementError):
    """No allowed node in the location has enough free capacity."""

    def __init__(self, location_id: int) -> None:
        self.location_id = location_id
        super().__init__(
            f"No suitable node found in location {location_id} with sufficient resources"
        )


class NoNodeSelectedError(PlacementError):
    """Neither node, location nor default node resolved a placement."""

    def __init__(self) -> None:
        super().__init__(
            "No node selected for deployment. Configure a node, a location or a default node."
        )


class InsufficientResourcesError(PlacementError):
    """Chosen node cannot fit the requested memory or disk."""

    def __init__(self, *, kind: str, required: int, available: float, node_id: int) -> None:
        self.kind = kind
        self.required = required
        self.available = available
        self.node_id = node_id
        label = "memory" if kind == "memory" else "disk space"
        super().__init__(
            f"Node {node_id} does not have enough {label} available "
            f"(Required: {required}MB, Available: {available:g}MB)"
        )


class NoFreePortError(PlacementError):
    """Port search exhausted its bound without finding an unused port."""

    def __init__(self, *, node_id: int, start_port: int, end_port: int) -> None:
        self.node_id = node_id
        self.start_port = start_port
        self.end_port = end_port
        super().__init__(
            f"No free port on node {node_id} between {start_port} and {end_port}"
        )


class InsufficientAllocationsError(PlacementError):
    """Fewer unassigned allocations exist than were requested."""

    def __init__(self, *, node_id: int, required: int, available: int) -> None:
        self.node_id = node_id
        self.required = required
        self.available = available
        super().__init__(
            f"Node {node_id} has {available} free allocations, {required} required"
        )


class AllocationCreateError(PlacementError):
    """Allocation creation did not yield a usable allocation."""


# ── Configuration / state ────────────────────────────────────────


class ConfigurationError(ProvisionerError):
    """Panel or product configuration is missing or invalid."""


class EggNotFoundError(ConfigurationError):
    """Configured egg does not exist on the panel."""

    def __init__(self, egg_id: int) -> None:
        self.egg_id = egg_id
        super().__init__(f"Could not find nest containing egg ID {egg_id}")


class RemoteStateError(ProvisionerError):
    """Panel returned a payload missing data the engine depends on."""


class ServiceNotFoundError(ProvisionerError):
    """Service record does not exist."""

    def __init__(self, *, order_id: int | None = None, service_id: int | None = None) -> None:
        self.order_id = order_id
        self.service_id = service_id
        if service_id is not None:
            super().__init__(f"Service {service_id} not found")
        else:
            super().__init__(f"Service for order {order_id} not found")


class NotProvisionedError(ProvisionerError):
    """Operation needs a remote server but the service has none."""

    def __init__(self, service_id: int | None) -> None:
        self.service_id = service_id
        super().__init__(f"Service {service_id} has no provisioned server")


class AlreadyProvisionedError(ProvisionerError):
    """Service record already holds a remote server."""

    def __init__(self, service_id: int | None, remote_server_id: int) -> None:
        self.service_id = service_id
        self.remote_server_id = remote_server_id
        super().__init__(
            f"Service {service_id} is already provisioned as server {remote_server_id}"
        )


class InvalidStateTransition(ProvisionerError):
    """Raised for lifecycle transitions the state table does not allow."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"invalid state transition: {from_state!r} -> {to_state!r}")


class ProvisionFailedError(ProvisionerError):
    """Provisioning aborted; the service record was left untouched."""

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Failed to provision server: {cause}")
