"""HTTP client for the panel application API.

Auth uses the application API key as a bearer token. Every call has a bounded
timeout. Transport failures surface as `ApiConnectionError`, HTTP errors as
`RemoteError` carrying the panel's ``errors: [{code, detail}]`` list.
Retries are available for transient failures but disabled by default.
"""

import random
import time
from typing import Any

import httpx

from panel_provisioner.config import Settings, get_settings
from panel_provisioner.contracts.dto import PanelConfig
from panel_provisioner.errors import (
    ApiConnectionError,
    RemoteError,
    RemoteNotFoundError,
    RemoteStateError,
)
from panel_provisioner.logging import get_logger, log_safely
from panel_provisioner.schemas import (
    Allocation,
    Egg,
    Location,
    Nest,
    NodeCandidate,
    PanelServer,
    PanelUser,
    StartupVariable,
)

logger = get_logger(__name__)

PANEL_MEDIA_TYPE = "Application/vnd.pterodactyl.v1+json"
API_PREFIX = "/api/application"

# Status codes eligible for retry when retries are enabled.
_RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})
_MAX_PAGES = 100

# Server attributes reported by get_server_resources.
SERVER_RESOURCE_KEYS = ("id", "identifier", "status", "suspended", "limits", "feature_limits")


class PanelClient:
    """Synchronous client for the panel application API."""

    def __init__(
        self,
        *,
        panel_url: str,
        api_key: str,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 0,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ) -> None:
        if not panel_url or not api_key:
            raise ValueError("panel_url and api_key are required")

        self.base_url = panel_url.rstrip("/")
        self._api_key = api_key
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=self._timeout)

    @classmethod
    def from_config(
        cls, panel_config: PanelConfig, settings: Settings | None = None
    ) -> "PanelClient":
        """Create a client for the panel described by ``panel_config``."""
        settings = settings or get_settings()
        return cls(
            panel_url=panel_config.panel_url,
            api_key=panel_config.api_key,
            timeout_seconds=settings.panel_timeout_seconds,
            max_retries=settings.panel_max_retries,
            base_delay=settings.panel_retry_base_delay,
        )

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PanelClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ── Transport ────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": PANEL_MEDIA_TYPE,
        }

    def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON object.

        Args:
            method: HTTP method.
            path: Path relative to the panel URL, e.g. ``/api/application/nodes``.
            body: JSON body, omitted when None.
            params: Query string parameters.

        Returns:
            Decoded response object; ``{}`` for empty or non-JSON bodies.

        Raises:
            ApiConnectionError: Transport failure.
            RemoteError: HTTP status >= 400 (RemoteNotFoundError for 404).
        """
        resp = self._send(method, path, body=body, params=params)
        self._raise_for_status(resp, method, path)
        return self._decode(resp)

    def _send(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        kwargs: dict[str, Any] = {
            "headers": self._headers(),
            "params": params,
            "timeout": self._timeout,
        }
        if body is not None:
            kwargs["json"] = body

        for attempt in range(self._max_retries + 1):
            try:
                resp = self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt < self._max_retries:
                    self._wait_before_retry(method, path, attempt, reason=type(e).__name__)
                    continue
                log_safely(
                    logger,
                    "error",
                    "panel_connection_failed",
                    method=method,
                    path=path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise ApiConnectionError(e, method=method, path=path) from e

            if resp.status_code in _RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                self._wait_before_retry(method, path, attempt, reason=str(resp.status_code))
                continue
            return resp

        # Should not reach here: the last attempt either returns or raises.
        raise ApiConnectionError(RuntimeError("retries exhausted"), method=method, path=path)

    def _wait_before_retry(self, method: str, path: str, attempt: int, *, reason: str) -> None:
        delay = random.uniform(0, min(self._base_delay * (2**attempt), self._max_delay))
        log_safely(
            logger,
            "warning",
            "panel_request_retry",
            method=method,
            path=path,
            reason=reason,
            attempt=attempt + 1,
            max_attempts=self._max_retries + 1,
            delay_sec=round(delay, 2),
        )
        time.sleep(delay)

    def _raise_for_status(self, resp: httpx.Response, method: str, path: str) -> None:
        if resp.status_code < 400:
            return

        details: list[dict[str, Any]] = []
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("errors"), list):
            details = [
                {"code": item.get("code"), "detail": item.get("detail")}
                for item in payload["errors"]
                if isinstance(item, dict)
            ]

        log_safely(
            logger,
            "error",
            "panel_request_failed",
            method=method,
            path=path,
            http_status=resp.status_code,
            details=details,
        )

        error_cls = RemoteNotFoundError if resp.status_code == 404 else RemoteError
        raise error_cls(resp.status_code, details, method=method, path=path)

    @staticmethod
    def _decode(resp: httpx.Response) -> dict[str, Any]:
        if not resp.content:
            return {}
        try:
            payload = resp.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _attributes(payload: dict[str, Any], what: str) -> dict[str, Any]:
        attributes = payload.get("attributes")
        if not isinstance(attributes, dict):
            raise RemoteStateError(f"Panel response for {what} has no attributes")
        return attributes

    def _list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Fetch every page of a collection and return the ``attributes`` items."""
        items: list[dict[str, Any]] = []
        page = 1
        while page <= _MAX_PAGES:
            page_params = dict(params or {})
            if page > 1:
                page_params["page"] = page
            payload = self.request("GET", path, params=page_params or None)

            items.extend(
                item["attributes"]
                for item in payload.get("data") or []
                if isinstance(item, dict) and isinstance(item.get("attributes"), dict)
            )

            pagination = (payload.get("meta") or {}).get("pagination") or {}
            total_pages = int(pagination.get("total_pages") or 1)
            if page >= total_pages:
                break
            page += 1
        return items

    # ── Nodes / locations ────────────────────────────────────────

    def list_nodes(self) -> list[NodeCandidate]:
        """List all nodes."""
        return [NodeCandidate.model_validate(n) for n in self._list(f"{API_PREFIX}/nodes")]

    def get_node(self, node_id: int) -> NodeCandidate:
        """Get one node including its allocated resources."""
        payload = self.request("GET", f"{API_PREFIX}/nodes/{node_id}")
        return NodeCandidate.model_validate(self._attributes(payload, f"node {node_id}"))

    def list_locations(self) -> list[Location]:
        """List all locations."""
        return [Location.model_validate(loc) for loc in self._list(f"{API_PREFIX}/locations")]

    # ── Nests / eggs ─────────────────────────────────────────────

    def list_nests_with_eggs(self) -> list[Nest]:
        """List nests with their eggs embedded."""
        nests = self._list(f"{API_PREFIX}/nests", params={"include": "eggs"})
        return [Nest.from_attributes_payload(n) for n in nests]

    def list_eggs(self, nest_id: int) -> list[Egg]:
        """List eggs of one nest."""
        eggs = self._list(f"{API_PREFIX}/nests/{nest_id}/eggs")
        return [Egg.from_payload({"attributes": e}) for e in eggs]

    def get_egg(self, nest_id: int, egg_id: int) -> Egg:
        """Get an egg with its variable schema."""
        payload = self.request(
            "GET",
            f"{API_PREFIX}/nests/{nest_id}/eggs/{egg_id}",
            params={"include": "variables"},
        )
        self._attributes(payload, f"egg {egg_id}")
        return Egg.from_payload(payload)

    # ── Servers ──────────────────────────────────────────────────

    def create_server(self, data: dict[str, Any]) -> PanelServer:
        """Create a server and return the created resource."""
        payload = self.request("POST", f"{API_PREFIX}/servers", data)
        attributes = self._attributes(payload, "server create")
        if "id" not in attributes:
            raise RemoteStateError("Panel did not return an id for the created server")
        server = PanelServer.model_validate(attributes)
        logger.info(
            "panel_server_created",
            server_id=server.id,
            identifier=server.identifier,
            node_id=server.node,
        )
        return server

    def get_server(self, server_id: int) -> PanelServer:
        """Get server details."""
        payload = self.request("GET", f"{API_PREFIX}/servers/{server_id}")
        return PanelServer.model_validate(self._attributes(payload, f"server {server_id}"))

    def get_server_resources(self, server_id: int) -> dict[str, Any]:
        """Status, suspension flag and resource limits of a server."""
        payload = self.request("GET", f"{API_PREFIX}/servers/{server_id}")
        attributes = self._attributes(payload, f"server {server_id}")
        return {key: attributes.get(key) for key in SERVER_RESOURCE_KEYS}

    def update_server_build(self, server_id: int, data: dict[str, Any]) -> dict[str, Any]:
        """Update limits, feature limits and allocation of a server."""
        return self.request("PATCH", f"{API_PREFIX}/servers/{server_id}/build", data)

    def get_server_startup(self, server_id: int) -> list[StartupVariable]:
        """Get the startup variables currently set on a server."""
        payload = self.request(
            "GET",
            f"{API_PREFIX}/servers/{server_id}",
            params={"include": "variables"},
        )
        attributes = self._attributes(payload, f"server {server_id}")
        relationships = attributes.get("relationships") or {}
        variables = (relationships.get("variables") or {}).get("data") or []
        return [StartupVariable.model_validate(v.get("attributes", {})) for v in variables]

    def update_server_startup(self, server_id: int, data: dict[str, Any]) -> dict[str, Any]:
        """Replace startup command, image and environment of a server."""
        return self.request("PATCH", f"{API_PREFIX}/servers/{server_id}/startup", data)

    def suspend_server(self, server_id: int) -> None:
        self.request("POST", f"{API_PREFIX}/servers/{server_id}/suspend")
        logger.info("panel_server_suspended", server_id=server_id)

    def unsuspend_server(self, server_id: int) -> None:
        self.request("POST", f"{API_PREFIX}/servers/{server_id}/unsuspend")
        logger.info("panel_server_unsuspended", server_id=server_id)

    def delete_server(self, server_id: int) -> None:
        self.request("DELETE", f"{API_PREFIX}/servers/{server_id}")
        logger.info("panel_server_deleted", server_id=server_id)

    # ── Users ────────────────────────────────────────────────────

    def find_users_by_email(self, email: str) -> list[PanelUser]:
        """Find panel users by exact email filter."""
        users = self._list(f"{API_PREFIX}/users", params={"filter[email]": email})
        return [PanelUser.model_validate(u) for u in users]

    def get_user(self, user_id: int) -> PanelUser:
        payload = self.request("GET", f"{API_PREFIX}/users/{user_id}")
        return PanelUser.model_validate(self._attributes(payload, f"user {user_id}"))

    def create_user(self, data: dict[str, Any]) -> PanelUser:
        """Create a panel user."""
        payload = self.request("POST", f"{API_PREFIX}/users", data)
        attributes = self._attributes(payload, "user create")
        if "id" not in attributes:
            raise RemoteStateError("Panel did not return an id for the created user")
        return PanelUser.model_validate(attributes)

    def update_user(self, user_id: int, data: dict[str, Any]) -> dict[str, Any]:
        return self.request("PATCH", f"{API_PREFIX}/users/{user_id}", data)

    # ── Allocations ──────────────────────────────────────────────

    def list_allocations(self, node_id: int) -> list[Allocation]:
        """List every allocation on a node, all pages."""
        allocations = self._list(f"{API_PREFIX}/nodes/{node_id}/allocations")
        return [Allocation.model_validate({"node_id": node_id, **a}) for a in allocations]

    def create_allocation(self, node_id: int, ip: str, ports: list[int]) -> dict[str, Any]:
        """Create allocations for ``ports`` on ``ip``.

        The panel usually answers with an empty body.
        """
        return self.request(
            "POST",
            f"{API_PREFIX}/nodes/{node_id}/allocations",
            {"ip": ip, "ports": [str(p) for p in ports]},
        )

    # ── SSO ──────────────────────────────────────────────────────

    def get_sso_redirect(self, user_id: int, sso_secret: str) -> str:
        """Ask the panel SSO plugin for a pre-authenticated redirect URL."""
        payload = self.request(
            "GET",
            "/sso-wemx/",
            params={"sso_secret": sso_secret, "user_id": user_id},
        )
        redirect = payload.get("redirect")
        if not redirect:
            raise RemoteStateError(
                f"Failed to get SSO redirect URL: {payload.get('message', 'Unknown error')}"
            )
        return str(redirect)
