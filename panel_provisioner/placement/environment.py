"""Environment variable resolution for new servers.

Per variable: explicit override, then top-level config key (exact, then
lowercased), then the egg default with literal fallbacks for well-known keys.
Sentinel values are replaced by random secrets afterwards.
"""

from dataclasses import dataclass, field
import secrets
from typing import Any

from panel_provisioner.schemas import EggVariable

AUTO_PORT = "AUTO_PORT"
RANDOM_SENTINELS = frozenset({"AUTO_PASSWORD", "RANDOM_STRING", "GENERATE_RANDOM"})

# Used when the egg declares these keys with an empty default.
WELL_KNOWN_DEFAULTS: dict[str, str] = {
    "SERVER_JARFILE": "server.jar",
    "VANILLA_VERSION": "latest",
    "MC_VERSION": "latest",
    "VERSION": "latest",
    "BUILD_NUMBER": "latest",
    "FORGE_VERSION": "recommended",
}


def generate_secret() -> str:
    """Random 16 character hex string."""
    return secrets.token_hex(8)


@dataclass
class EnvironmentResult:
    """Resolved environment plus whether any value asked for an automatic port."""

    variables: dict[str, Any] = field(default_factory=dict)
    requests_auto_port: bool = False


def _config_value(config: dict[str, Any], env_key: str) -> tuple[bool, Any]:
    for candidate in (env_key, env_key.lower()):
        if config.get(candidate) is not None:
            return True, config[candidate]
    return False, None


def _schema_default(variable: EggVariable) -> str:
    default = variable.default_value or ""
    if default:
        return default
    return WELL_KNOWN_DEFAULTS.get(variable.env_variable, default)


def build_environment(
    schema: list[EggVariable],
    config: dict[str, Any],
    overrides: dict[str, Any] | None = None,
) -> EnvironmentResult:
    """Merge overrides, config fields and schema defaults into one environment.

    Args:
        schema: Egg variables in declaration order.
        config: Flat service config; top-level keys may carry variable values.
        overrides: The config's ``variables`` map. Keys outside the schema are kept.
    """
    environment: dict[str, Any] = dict(overrides or {})

    for variable in schema:
        key = variable.env_variable
        if environment.get(key) is not None:
            continue
        found, value = _config_value(config, key)
        environment[key] = value if found else _schema_default(variable)

    for key, value in environment.items():
        if isinstance(value, str) and value in RANDOM_SENTINELS:
            environment[key] = generate_secret()

    return EnvironmentResult(
        variables=environment,
        requests_auto_port=any(value == AUTO_PORT for value in environment.values()),
    )


def apply_auto_port(variables: dict[str, Any], port: int) -> dict[str, Any]:
    """Copy of ``variables`` with every AUTO_PORT value set to ``port``."""
    return {key: str(port) if value == AUTO_PORT else value for key, value in variables.items()}
