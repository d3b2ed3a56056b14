from typing import Any

import pytest

from panel_provisioner.config import Settings
from panel_provisioner.contracts.dto import (
    Client,
    Order,
    PanelConfig,
    ServiceRecord,
    ServiceStatus,
)
from panel_provisioner.provisioner import ProvisioningOrchestrator
from tests.mocks import (
    InMemoryBillingGateway,
    InMemoryServiceRecordStore,
    InMemorySettingsStore,
    MockPanelClient,
)

PANEL_URL = "https://panel.example.com"
API_KEY = "ptla_test_key"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def panel_config() -> PanelConfig:
    return PanelConfig(panel_url=PANEL_URL, api_key=API_KEY)


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore({"panel_url": PANEL_URL, "api_key": API_KEY})


@pytest.fixture
def record_store() -> InMemoryServiceRecordStore:
    return InMemoryServiceRecordStore()


@pytest.fixture
def billing(record_store) -> InMemoryBillingGateway:
    gateway = InMemoryBillingGateway(record_store)
    gateway.add_client(
        Client(id=7, email="john.doe+test@example.com", first_name="John", last_name="Doe")
    )
    return gateway


@pytest.fixture
def panel() -> MockPanelClient:
    """Panel with one node in location 3, one egg and one free allocation."""
    mock = MockPanelClient()
    mock.add_node(1, location_id=3)
    mock.add_egg(
        5,
        nest_id=2,
        variables={"SERVER_JARFILE": "", "MC_VERSION": "1.20.4", "RCON_PASS": "AUTO_PASSWORD"},
    )
    mock.add_allocation(10, node_id=1, ip="10.0.0.1", port=25565)
    return mock


@pytest.fixture
def panel_configs() -> list[PanelConfig]:
    """PanelConfigs handed to the client factory, in call order."""
    return []


@pytest.fixture
def orchestrator(billing, record_store, settings_store, settings, panel, panel_configs):
    def client_factory(config: PanelConfig) -> MockPanelClient:
        panel_configs.append(config)
        return panel

    return ProvisioningOrchestrator(
        billing,
        record_store,
        settings_store,
        settings=settings,
        client_factory=client_factory,
    )


@pytest.fixture
def make_order(billing, record_store):
    """Create a service record plus its order and return the order."""
    counter = {"next": 1}

    def _make(
        config: dict[str, Any] | None = None,
        *,
        status: ServiceStatus = ServiceStatus.PENDING,
        remote_server_id: int | None = None,
        remote_server_identifier: str | None = None,
        order_status: str | None = None,
        title: str | None = "Minecraft Basic",
    ) -> Order:
        config = {"egg_id": 5, "node_id": 1, **(config or {})}
        record = record_store.add(
            ServiceRecord(
                client_id=7,
                status=status,
                remote_server_id=remote_server_id,
                remote_server_identifier=remote_server_identifier,
                config=config,
            )
        )
        order = Order(
            id=counter["next"],
            client_id=7,
            title=title,
            status=order_status,
            config=config,
            service_id=record.id,
        )
        counter["next"] += 1
        return billing.add_order(order)

    return _make
