"""Service lifecycle driver.

Turns an order's configuration into a placement (node, allocation,
environment) and drives the panel to create, modify, suspend and reclaim the
server behind a service record.

Every public operation resolves its PanelConfig once and opens one PanelClient
for the duration of the call. Records are immutable; each state change is a
validated copy that is persisted through the ServiceRecordStore.
"""

from collections.abc import Callable
import time
from typing import Any

from pydantic import ValidationError

from panel_provisioner.clients import PanelClient
from panel_provisioner.config import Settings, get_settings
from panel_provisioner.contracts import BillingGateway, ServiceRecordStore, SettingsStore
from panel_provisioner.contracts.dto import (
    Client,
    Order,
    PanelConfig,
    PasswordChangeRequest,
    PlacementRequest,
    Product,
    ServiceRecord,
    ServiceStatus,
    StartupVariablesUpdate,
    UpdateServerRequest,
)
from panel_provisioner.errors import (
    AlreadyProvisionedError,
    ConfigurationError,
    EggNotFoundError,
    NotProvisionedError,
    ProvisionerError,
    ProvisionFailedError,
    RemoteNotFoundError,
    RemoteStateError,
    ServiceNotFoundError,
)
from panel_provisioner.logging import get_logger, log_safely, operation_context
from panel_provisioner.placement import (
    AllocationResolver,
    NodeSelector,
    PortRange,
    apply_auto_port,
    build_environment,
    generate_secret,
)
from panel_provisioner.schemas import Allocation, Egg, PanelServer, StartupVariable

from .naming import generate_username, resolve_server_name
from .panel_config import load_panel_config, save_panel_settings
from .state_machine import ensure_transition
from .status_sync import sync_status

logger = get_logger(__name__)

ClientFactory = Callable[[PanelConfig], PanelClient]

SENSITIVE_CONFIG_KEYS = ("api_key", "sso_secret", "password")
FALLBACK_EMAIL = "noemail@example.com"


class ProvisioningOrchestrator:
    """Lifecycle operations for panel-backed services."""

    def __init__(
        self,
        billing: BillingGateway,
        store: ServiceRecordStore,
        settings_store: SettingsStore,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.billing = billing
        self.store = store
        self.settings_store = settings_store
        self.settings = settings or get_settings()
        self._client_factory = client_factory or (
            lambda panel_config: PanelClient.from_config(panel_config, self.settings)
        )

    # ── Helpers ──────────────────────────────────────────────────

    def _record_for(self, order: Order) -> ServiceRecord:
        record = self.billing.get_order_service_record(order)
        if record is None:
            raise ServiceNotFoundError(order_id=order.id)
        return record

    def _panel_config(self, config: dict[str, Any] | None = None) -> PanelConfig:
        return load_panel_config(self.settings_store, config)

    def _client(self, panel_config: PanelConfig) -> PanelClient:
        return self._client_factory(panel_config)

    def _save(self, record: ServiceRecord) -> ServiceRecord:
        return self.store.save(record)

    # ── Creation ─────────────────────────────────────────────────

    def attach_order_config(self, product: Product, data: dict[str, Any]) -> dict[str, Any]:
        """Product defaults overlaid with submitted order data."""
        return {**product.config, **data}

    def create(self, order: Order, product: Product | None = None) -> ServiceRecord:
        """Persist a pending service record. No remote call is made."""
        config = {**(product.config if product else {}), **order.config}
        record = self.store.add(ServiceRecord(client_id=order.client_id, config=config))
        logger.info(
            "service_record_created",
            service_id=record.id,
            order_id=order.id,
            client_id=order.client_id,
            config_keys=sorted(config),
        )
        return record

    # ── Provisioning ─────────────────────────────────────────────

    def activate(self, order: Order) -> bool:
        return self.provision(order)

    def provision(self, order: Order) -> bool:
        """Create the remote server for an order and mark the record active.

        Raises:
            ProvisionFailedError: Any step failed, including a missing record,
                a record that already holds a server or a disallowed
                transition. The record is unchanged.
        """
        with operation_context("provision", order_id=order.id):
            try:
                record = self._record_for(order)
                log_safely(
                    logger,
                    "info",
                    "provision_started",
                    service_id=record.id,
                    from_status=record.status.value,
                )
                if record.remote_server_id is not None:
                    raise AlreadyProvisionedError(record.id, record.remote_server_id)
                ensure_transition(record.status, ServiceStatus.ACTIVE)

                panel_config = self._panel_config(record.config)
                request = PlacementRequest.from_config(record.config)
                if request.egg_id is None:
                    raise ConfigurationError("Egg ID not configured for this product")
                customer = self.billing.get_client_by_id(record.client_id)
                if customer is None:
                    raise ConfigurationError(f"Client {record.client_id} not found")

                with self._client(panel_config) as client:
                    server = self._create_server(
                        client, panel_config, request, record, order, customer
                    )
                    updated = record.transition(
                        status=ServiceStatus.ACTIVE,
                        remote_server_id=server.id,
                        remote_server_identifier=server.identifier,
                    )
                    try:
                        self._save(updated)
                    except Exception:
                        self._discard_server(client, server.id)
                        raise
            except Exception as e:
                log_safely(
                    logger,
                    "error",
                    "provision_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise ProvisionFailedError(e) from e

            log_safely(
                logger,
                "info",
                "provision_completed",
                service_id=record.id,
                server_id=server.id,
                identifier=server.identifier,
                node_id=server.node,
            )
            return True

    def _discard_server(self, client: PanelClient, server_id: int) -> None:
        """Delete a server that could not be recorded."""
        try:
            client.delete_server(server_id)
        except Exception as e:
            log_safely(
                logger,
                "error",
                "orphan_server_cleanup_failed",
                server_id=server_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    def _create_server(
        self,
        client: PanelClient,
        panel_config: PanelConfig,
        request: PlacementRequest,
        record: ServiceRecord,
        order: Order,
        customer: Client,
    ) -> PanelServer:
        user_id = self._get_or_create_user(client, customer)
        egg = self._resolve_egg(client, request.egg_id, record.config.get("nest_id"))

        selection = NodeSelector(client).select(request, panel_config)
        node_id = selection.node_id

        environment = build_environment(egg.variables, record.config, request.variables)

        allocation, additional = self._allocate(client, panel_config, request, node_id)

        variables = environment.variables
        if environment.requests_auto_port:
            if request.auto_port:
                variables = apply_auto_port(variables, allocation.port)
            else:
                logger.warning(
                    "auto_port_requested_without_flag",
                    keys=sorted(k for k, v in variables.items() if v == "AUTO_PORT"),
                )

        name = resolve_server_name(
            pattern=request.server_name_pattern,
            server_name=request.server_name,
            client=customer,
            service_id=record.id,
            order_title=order.title,
        )

        allocation_data: dict[str, Any] = {"default": allocation.id}
        if additional:
            allocation_data["additional"] = [a.id for a in additional]

        data: dict[str, Any] = {
            "name": name,
            "user": user_id,
            "egg": egg.id,
            "docker_image": request.docker_image or egg.docker_image,
            "startup": request.startup_command or egg.startup,
            "environment": variables,
            "limits": request.limits.model_dump(exclude_none=True),
            "feature_limits": request.feature_limits.model_dump(),
            "allocation": allocation_data,
        }
        if request.server_description:
            data["description"] = request.server_description
        if request.oom_disabled is not None:
            data["oom_disabled"] = request.oom_disabled

        return client.create_server(data)

    def _get_or_create_user(self, client: PanelClient, customer: Client) -> int:
        email = customer.email or FALLBACK_EMAIL
        existing = client.find_users_by_email(email)
        if existing:
            logger.debug("panel_user_found", user_id=existing[0].id)
            return existing[0].id

        user = client.create_user(
            {
                "email": email,
                "username": generate_username(email),
                "first_name": customer.first_name or "Client",
                "last_name": customer.last_name or "User",
                "password": generate_secret(),
            }
        )
        logger.info("panel_user_created", user_id=user.id, client_id=customer.id)
        return user.id

    def _resolve_egg(self, client: PanelClient, egg_id: int, nest_id: Any = None) -> Egg:
        if not nest_id:
            nest_id = next(
                (
                    nest.id
                    for nest in client.list_nests_with_eggs()
                    if any(egg.id == egg_id for egg in nest.eggs)
                ),
                None,
            )
            if nest_id is None:
                raise EggNotFoundError(egg_id)
        return client.get_egg(int(nest_id), egg_id)

    def _allocate(
        self,
        client: PanelClient,
        panel_config: PanelConfig,
        request: PlacementRequest,
        node_id: int,
    ) -> tuple[Allocation, list[Allocation]]:
        policy = panel_config.allocation_range(node_id)
        port_range = PortRange.build(
            policy.port_start or self.settings.default_start_port,
            policy.port_end,
            self.settings.max_port_attempts,
        )
        resolver = AllocationResolver(client)
        allocation = resolver.reserve_allocation(
            node_id,
            preferred_ip=policy.host,
            port_range=port_range,
            fresh=self.settings.fresh_allocations,
        )

        additional: list[Allocation] = []
        if request.additional_allocations:
            additional = resolver.find_free_allocations(
                node_id,
                request.additional_allocations,
                preferred_ip=allocation.ip,
                exclude_ids=frozenset({allocation.id}),
            )
        return allocation, additional

    # ── Suspension ───────────────────────────────────────────────

    def suspend(self, order: Order) -> bool:
        """Suspend the remote server. No-op when nothing is provisioned."""
        return self._set_suspended(order, suspended=True)

    def unsuspend(self, order: Order) -> bool:
        """Unsuspend the remote server. No-op when nothing is provisioned."""
        return self._set_suspended(order, suspended=False)

    def _set_suspended(self, order: Order, *, suspended: bool) -> bool:
        operation = "suspend" if suspended else "unsuspend"
        target = ServiceStatus.SUSPENDED if suspended else ServiceStatus.ACTIVE
        record = self._record_for(order)

        with operation_context(operation, order_id=order.id, service_id=record.id):
            if record.remote_server_id is None:
                logger.info(f"{operation}_skipped_no_server", status=record.status.value)
                return True
            ensure_transition(record.status, target)

            panel_config = self._panel_config(record.config)
            with self._client(panel_config) as client:
                if suspended:
                    client.suspend_server(record.remote_server_id)
                else:
                    client.unsuspend_server(record.remote_server_id)

            if record.status != target:
                self._save(record.transition(status=target))
            return True

    # ── Teardown ─────────────────────────────────────────────────

    def unprovision(self, order: Order) -> ServiceRecord:
        """Delete the remote server and mark the record deleted.

        A server already gone on the panel counts as deleted. Other remote
        errors propagate and leave the record unchanged.
        """
        record = self._record_for(order)

        with operation_context("unprovision", order_id=order.id, service_id=record.id):
            if record.status == ServiceStatus.DELETED and record.remote_server_id is None:
                logger.debug("unprovision_already_deleted")
                return record

            if record.remote_server_id is not None:
                panel_config = self._panel_config(record.config)
                with self._client(panel_config) as client:
                    try:
                        client.delete_server(record.remote_server_id)
                    except RemoteNotFoundError:
                        logger.info(
                            "server_already_absent",
                            server_id=record.remote_server_id,
                        )

            updated = self._save(
                record.transition(
                    status=ServiceStatus.DELETED,
                    remote_server_id=None,
                    remote_server_identifier=None,
                )
            )
            logger.info("service_unprovisioned", previous_status=record.status.value)
            return updated

    def delete(self, order: Order) -> ServiceRecord:
        return self.unprovision(order)

    # ── Billing lifecycle hooks ──────────────────────────────────

    def cancel(self, order: Order) -> bool:
        self.unprovision(order)
        return True

    def uncancel(self, order: Order) -> bool:
        if self._record_for(order).remote_server_id is None:
            return self.provision(order)
        return self.unsuspend(order)

    def renew(self, order: Order) -> bool:
        return True

    def sync_status(self, order: Order) -> ServiceRecord:
        """Mirror the order status onto its record and persist any change."""
        record = self._record_for(order)
        updated = sync_status(order, record)
        if updated is not record:
            updated = self._save(updated)
        return updated

    # ── Updates ──────────────────────────────────────────────────

    def update_server(self, update: UpdateServerRequest) -> bool:
        """Merge a config patch into the record and push new build limits.

        Raises:
            RemoteStateError: Panel server info carries no allocation id.
        """
        order = self.billing.get_existing_order_by_id(update.order_id)
        record = self._record_for(order)

        with operation_context("update_server", order_id=order.id, service_id=record.id):
            config = {**record.config, **update.config}
            request = PlacementRequest.from_config(config)
            record = self._save(record.transition(config=config))
            logger.info("service_config_updated", keys=sorted(update.config))

            if record.remote_server_id is None:
                return True

            panel_config = self._panel_config(config)
            with self._client(panel_config) as client:
                server = client.get_server(record.remote_server_id)
                if server.allocation is None:
                    raise RemoteStateError("Could not retrieve server allocation ID")

                build: dict[str, Any] = {
                    "allocation": server.allocation,
                    **request.limits.model_dump(exclude_none=True),
                    "feature_limits": request.feature_limits.model_dump(),
                }
                client.update_server_build(record.remote_server_id, build)

            logger.info("server_build_updated", server_id=record.remote_server_id)
            return True

    def get_server_info(self, order: Order | None, server_id: int) -> dict[str, Any]:
        """Attributes of a panel server."""
        config = self._record_for(order).config if order else None
        with self._client(self._panel_config(config)) as client:
            return client.get_server(server_id).model_dump()

    def get_server_variables(self, order: Order) -> list[StartupVariable]:
        """Startup variables of the order's server; empty when none exists."""
        record = self._record_for(order)
        if record.remote_server_id is None:
            return []
        with self._client(self._panel_config(record.config)) as client:
            return client.get_server_startup(record.remote_server_id)

    def update_server_variables(self, update: StartupVariablesUpdate) -> bool:
        """Merge new environment values over the server's current ones."""
        order = self.billing.get_existing_order_by_id(update.order_id)
        record = self._record_for(order)
        if record.remote_server_id is None:
            raise NotProvisionedError(record.id)

        with operation_context("update_server_variables", order_id=order.id, service_id=record.id):
            with self._client(self._panel_config(record.config)) as client:
                server = client.get_server(record.remote_server_id)
                environment = {
                    v.env_variable: v.server_value
                    for v in client.get_server_startup(record.remote_server_id)
                }
                environment.update(update.variables)
                client.update_server_startup(
                    record.remote_server_id,
                    {
                        "startup": server.container.startup_command,
                        "environment": environment,
                        "egg": server.egg,
                        "image": server.container.image,
                        "skip_scripts": True,
                    },
                )
            logger.info("server_variables_updated", keys=sorted(update.variables))
            return True

    def change_account_password(self, change: PasswordChangeRequest) -> bool:
        """Set a new password on the panel account owning the order's server."""
        order = self.billing.get_existing_order_by_id(change.order_id)
        record = self._record_for(order)
        if record.remote_server_id is None:
            raise NotProvisionedError(record.id)

        with operation_context("change_account_password", order_id=order.id):
            with self._client(self._panel_config(record.config)) as client:
                server = client.get_server(record.remote_server_id)
                if server.user is None:
                    raise RemoteStateError("Server has no owner")
                user = client.get_user(server.user)
                client.update_user(
                    user.id,
                    {
                        "email": user.email,
                        "username": user.username,
                        "first_name": user.first_name,
                        "last_name": user.last_name,
                        "password": change.password,
                    },
                )
            logger.info("panel_password_changed", user_id=user.id)
            return True

    # ── Panel access ─────────────────────────────────────────────

    def test_connection(self) -> dict[str, Any]:
        """Check credentials by listing nodes. Never raises."""
        try:
            with self._client(self._panel_config()) as client:
                start = time.perf_counter()
                nodes = client.list_nodes()
                latency_ms = round((time.perf_counter() - start) * 1000, 2)
        except Exception as e:
            log_safely(
                logger,
                "warning",
                "panel_connection_test_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return {"success": False, "message": str(e)}

        log_safely(logger, "info", "panel_connection_test_succeeded", node_count=len(nodes))
        return {
            "success": True,
            "message": "Connection successful",
            "latency": f"{latency_ms}ms",
            "node_count": len(nodes),
            "nodes": [
                {
                    "name": node.name,
                    "fqdn": node.fqdn,
                    "scheme": node.scheme,
                    "port": node.daemon_listen,
                    "maintenance": node.maintenance_mode,
                }
                for node in nodes
            ],
        }

    def get_sso_url(self, order: Order) -> str:
        """Single sign-on URL for the server owner. Never raises.

        Returns "" when the order has no record or server, SSO is not
        configured, or the panel lookup fails.
        """
        record = self.billing.get_order_service_record(order)
        if record is None or record.remote_server_id is None:
            return ""

        try:
            panel_config = self._panel_config(record.config)
        except ConfigurationError as e:
            log_safely(logger, "error", "sso_config_unavailable", error=str(e))
            return ""
        if not panel_config.sso_secret:
            return ""

        try:
            with self._client(panel_config) as client:
                server = client.get_server(record.remote_server_id)
                if server.user is None:
                    raise RemoteStateError("Server has no owner")
                return client.get_sso_redirect(server.user, panel_config.sso_secret)
        except (ProvisionerError, ValidationError) as e:
            log_safely(
                logger,
                "error",
                "sso_redirect_failed",
                service_id=record.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ""

    def get_server_status(self, server_id: int) -> dict[str, Any]:
        """Current status, suspension flag and limits of a panel server."""
        with self._client(self._panel_config()) as client:
            return client.get_server_resources(server_id)

    def get_egg_info(self, egg_id: int, nest_id: int | None = None) -> dict[str, Any]:
        """Egg details with its variable schema; the nest is looked up when not given.

        Raises:
            EggNotFoundError: No nest contains the egg.
        """
        with self._client(self._panel_config()) as client:
            return self._resolve_egg(client, egg_id, nest_id).model_dump()

    def list_nodes(self) -> list[dict[str, Any]]:
        with self._client(self._panel_config()) as client:
            return [
                {
                    "id": node.id,
                    "name": node.name,
                    "location_id": node.location_id,
                    "public": node.public,
                    "maintenance": node.maintenance_mode,
                }
                for node in client.list_nodes()
            ]

    def list_locations(self) -> list[dict[str, Any]]:
        with self._client(self._panel_config()) as client:
            return [
                {"id": loc.id, "short": loc.short, "long": loc.long}
                for loc in client.list_locations()
            ]

    def list_eggs(self) -> list[dict[str, Any]]:
        with self._client(self._panel_config()) as client:
            return [
                {
                    "id": egg.id,
                    "name": egg.name,
                    "nest_id": nest.id,
                    "nest_name": nest.name,
                    "docker_image": egg.docker_image,
                    "startup": egg.startup,
                }
                for nest in client.list_nests_with_eggs()
                for egg in nest.eggs
            ]

    # ── Settings / views ─────────────────────────────────────────

    def save_panel_settings(self, data: dict[str, Any]) -> None:
        save_panel_settings(self.settings_store, data)

    def to_api_dict(
        self, record: ServiceRecord, panel_config: PanelConfig | None = None
    ) -> dict[str, Any]:
        """Service view safe to expose to clients."""
        config = {k: v for k, v in record.config.items() if k not in SENSITIVE_CONFIG_KEYS}
        result: dict[str, Any] = {
            "id": record.id,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "status": record.status.value,
            "server_id": record.remote_server_id,
            "server_identifier": record.remote_server_identifier,
            "config": config,
        }

        if record.remote_server_identifier:
            if panel_config is None:
                try:
                    panel_config = self._panel_config()
                except ConfigurationError:
                    panel_config = None
            result["panel_url"] = (
                f"{panel_config.base_url}/server/{record.remote_server_identifier}"
                if panel_config
                else None
            )
        return result
