from .billing import InMemoryBillingGateway, InMemoryServiceRecordStore, InMemorySettingsStore
from .log_sink import BrokenLogger
from .panel import MockPanelClient

__all__ = [
    "BrokenLogger",
    "InMemoryBillingGateway",
    "InMemoryServiceRecordStore",
    "InMemorySettingsStore",
    "MockPanelClient",
]
