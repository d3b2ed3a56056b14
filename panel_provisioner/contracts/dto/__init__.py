from .billing import Client, Order, Product
from .panel import NodeAllocationRange, PanelConfig
from .placement import FeatureLimits, PlacementRequest, ResourceLimits
from .requests import PasswordChangeRequest, StartupVariablesUpdate, UpdateServerRequest
from .service import STATUSES_WITH_SERVER, ServiceRecord, ServiceStatus

__all__ = [
    "Client",
    "Order",
    "Product",
    "NodeAllocationRange",
    "PanelConfig",
    "FeatureLimits",
    "PlacementRequest",
    "ResourceLimits",
    "PasswordChangeRequest",
    "StartupVariablesUpdate",
    "UpdateServerRequest",
    "STATUSES_WITH_SERVER",
    "ServiceRecord",
    "ServiceStatus",
]
