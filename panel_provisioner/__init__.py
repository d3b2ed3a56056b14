"""Provisioning engine for panel-backed game and application servers.

Usage:
    from panel_provisioner import ProvisioningOrchestrator
    from panel_provisioner.config import get_settings
    from panel_provisioner.logging import setup_logging_from_settings

    setup_logging_from_settings(get_settings())
    orchestrator = ProvisioningOrchestrator(billing, store, settings_store)
    orchestrator.provision(order)
"""

from .errors import ProvisionerError, ProvisionFailedError
from .provisioner import ProvisioningOrchestrator

__all__ = ["ProvisioningOrchestrator", "ProvisionerError", "ProvisionFailedError"]
__version__ = "0.1.0"
