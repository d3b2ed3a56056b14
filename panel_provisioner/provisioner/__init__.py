"""Service lifecycle orchestration."""

from .naming import (
    DEFAULT_SERVER_NAME_PATTERN,
    generate_username,
    render_server_name,
    resolve_server_name,
)
from .orchestrator import ClientFactory, ProvisioningOrchestrator
from .panel_config import load_panel_config, save_panel_settings
from .state_machine import ALLOWED_TRANSITIONS, can_transition, ensure_transition
from .status_sync import ORDER_STATUS_MAP, sync_status

__all__ = [
    "DEFAULT_SERVER_NAME_PATTERN",
    "generate_username",
    "render_server_name",
    "resolve_server_name",
    "ClientFactory",
    "ProvisioningOrchestrator",
    "load_panel_config",
    "save_panel_settings",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "ensure_transition",
    "ORDER_STATUS_MAP",
    "sync_status",
]
