"""Panel configuration resolution from the billing settings store.

Global keys:
    panel_url, api_key, sso_secret  plain strings
    allowed_nodes                   JSON array of node ids
    default_node                    node id
    node_allocation_map             JSON object {node_id: {host, port_start, port_end}}

An order/service config carrying both ``panel_url`` and ``api_key`` points the
operation at a different panel.
"""

import json
from typing import Any

from pydantic import ValidationError

from panel_provisioner.contracts import SettingsStore
from panel_provisioner.contracts.dto import NodeAllocationRange, PanelConfig
from panel_provisioner.errors import ConfigurationError
from panel_provisioner.logging import get_logger

logger = get_logger(__name__)

PANEL_URL_KEY = "panel_url"
API_KEY_KEY = "api_key"
SSO_SECRET_KEY = "sso_secret"
ALLOWED_NODES_KEY = "allowed_nodes"
DEFAULT_NODE_KEY = "default_node"
NODE_ALLOCATION_MAP_KEY = "node_allocation_map"


def _decode_json(raw: Any, key: str, expected: type) -> Any:
    if raw is None or raw == "":
        return expected()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Setting {key} is not valid JSON: {e}") from e
    if raw is None:
        return expected()
    if not isinstance(raw, expected):
        raise ConfigurationError(f"Setting {key} must be a JSON {expected.__name__}")
    return raw


def _parse_node_id(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        node_id = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Setting {DEFAULT_NODE_KEY} is not a node id: {raw!r}") from e
    return node_id or None


def _parse_allowed_nodes(raw: Any) -> frozenset[int]:
    items = _decode_json(raw, ALLOWED_NODES_KEY, list)
    try:
        return frozenset(int(item) for item in items)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Setting {ALLOWED_NODES_KEY} must list node ids") from e


def _parse_allocation_map(raw: Any) -> dict[int, NodeAllocationRange]:
    items = _decode_json(raw, NODE_ALLOCATION_MAP_KEY, dict)
    try:
        return {
            int(node_id): NodeAllocationRange.model_validate(policy)
            for node_id, policy in items.items()
        }
    except (TypeError, ValueError, ValidationError) as e:
        raise ConfigurationError(f"Setting {NODE_ALLOCATION_MAP_KEY} is invalid: {e}") from e


def read_global_settings(settings: SettingsStore) -> dict[str, Any]:
    """Raw global panel settings."""
    return {
        PANEL_URL_KEY: settings.get_param_value(PANEL_URL_KEY, ""),
        API_KEY_KEY: settings.get_param_value(API_KEY_KEY, ""),
        SSO_SECRET_KEY: settings.get_param_value(SSO_SECRET_KEY, ""),
        ALLOWED_NODES_KEY: settings.get_param_value(ALLOWED_NODES_KEY, "[]"),
        DEFAULT_NODE_KEY: settings.get_param_value(DEFAULT_NODE_KEY, None),
        NODE_ALLOCATION_MAP_KEY: settings.get_param_value(NODE_ALLOCATION_MAP_KEY, "{}"),
    }


def load_panel_config(
    settings: SettingsStore, order_config: dict[str, Any] | None = None
) -> PanelConfig:
    """Resolve the panel configuration for one operation.

    Raises:
        ConfigurationError: Panel URL or API key missing, or a malformed setting.
    """
    order_config = order_config or {}
    global_settings = read_global_settings(settings)

    if order_config.get(PANEL_URL_KEY) and order_config.get(API_KEY_KEY):
        panel_url = order_config[PANEL_URL_KEY]
        api_key = order_config[API_KEY_KEY]
        sso_secret = order_config.get(SSO_SECRET_KEY) or global_settings[SSO_SECRET_KEY]
        logger.debug("panel_config_order_override", panel_url=panel_url)
    else:
        panel_url = global_settings[PANEL_URL_KEY]
        api_key = global_settings[API_KEY_KEY]
        sso_secret = global_settings[SSO_SECRET_KEY]

    if not panel_url or not api_key:
        raise ConfigurationError(
            "Panel settings are not configured. Set panel_url and api_key in module settings."
        )

    return PanelConfig(
        panel_url=str(panel_url),
        api_key=str(api_key),
        sso_secret=str(sso_secret or ""),
        allowed_node_ids=_parse_allowed_nodes(global_settings[ALLOWED_NODES_KEY]),
        default_node_id=_parse_node_id(global_settings[DEFAULT_NODE_KEY]),
        node_allocation_map=_parse_allocation_map(global_settings[NODE_ALLOCATION_MAP_KEY]),
    )


def save_panel_settings(settings: SettingsStore, data: dict[str, Any]) -> None:
    """Persist global panel settings submitted by an administrator.

    Missing ``allowed_nodes`` stores an empty allow-list (all nodes allowed).
    """
    for key in (PANEL_URL_KEY, API_KEY_KEY, SSO_SECRET_KEY, DEFAULT_NODE_KEY):
        if key in data and data[key] is not None:
            settings.set_param_value(key, data[key])

    allowed = sorted(_parse_allowed_nodes(data.get(ALLOWED_NODES_KEY)))
    settings.set_param_value(ALLOWED_NODES_KEY, json.dumps(allowed))

    if NODE_ALLOCATION_MAP_KEY in data:
        allocation_map = _parse_allocation_map(data[NODE_ALLOCATION_MAP_KEY])
        settings.set_param_value(
            NODE_ALLOCATION_MAP_KEY,
            json.dumps(
                {
                    str(node_id): policy.model_dump(exclude_none=True)
                    for node_id, policy in allocation_map.items()
                }
            ),
        )

    logger.info(
        "panel_settings_saved",
        keys=sorted(k for k in data if k != API_KEY_KEY),
        allowed_nodes=allowed,
    )
