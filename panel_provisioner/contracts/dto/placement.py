"""Placement request derived from a service record's configuration."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: Any) -> Any:
    if value is None or value == "" or value == 0 or value == "0":
        return None
    return value


class ResourceLimits(BaseModel):
    """Server build limits (MB for memory/swap/disk, percent for cpu)."""

    memory: int = 512
    swap: int = 0
    disk: int = 1024
    io: int = 500
    cpu: int = 100
    threads: str | None = None


class FeatureLimits(BaseModel):
    """Panel feature quotas for a server."""

    databases: int = 0
    allocations: int = 0
    backups: int = 0


class PlacementRequest(BaseModel):
    """Everything needed to place and create one server.

    Built per call from ``ServiceRecord.config`` and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    egg_id: int | None = None
    docker_image: str | None = None
    startup_command: str | None = None
    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    feature_limits: FeatureLimits = Field(default_factory=FeatureLimits)

    node_id: int | None = None
    node_selection_mode: str | None = None
    selected_node_id: int | None = None
    location_id: int | None = None

    auto_port: bool = False
    additional_allocations: int = Field(default=0, ge=0)
    variables: dict[str, Any] = Field(default_factory=dict)

    server_name: str | None = None
    server_name_pattern: str | None = None
    server_description: str | None = None
    oom_disabled: bool | None = None

    @field_validator("egg_id", "node_id", "selected_node_id", "location_id", mode="before")
    @classmethod
    def empty_id_is_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("auto_port", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> Any:
        if v is None or v == "":
            return False
        return v

    @field_validator("additional_allocations", mode="before")
    @classmethod
    def coerce_count(cls, v: Any) -> Any:
        return 0 if v is None or v == "" else v

    @field_validator("variables", mode="before")
    @classmethod
    def variables_must_be_mapping(cls, v: Any) -> Any:
        if v is None or v == "":
            return {}
        if not isinstance(v, dict):
            raise ValueError("variables must be a mapping of ENV_KEY to value")
        return v

    @property
    def wants_client_node(self) -> bool:
        """Client picked the node at order time."""
        return self.node_selection_mode == "client" and self.selected_node_id is not None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "PlacementRequest":
        """Build from a flat order/product config map.

        Limits and feature limits are flat keys in billing configs
        (``memory``, ``disk``, ``databases``...); missing or blank values
        fall back to the model defaults.
        """
        limit_defaults = ResourceLimits()
        feature_defaults = FeatureLimits()

        def pick(key: str, default: Any) -> Any:
            value = config.get(key)
            return default if value is None or value == "" else value

        limits = {
            name: pick(name, getattr(limit_defaults, name))
            for name in ("memory", "swap", "disk", "io", "cpu")
        }
        if config.get("cpu_pinning"):
            limits["threads"] = str(config["cpu_pinning"])

        feature_limits = {
            name: pick(name, getattr(feature_defaults, name))
            for name in ("databases", "allocations", "backups")
        }

        oom_disabled = config.get("oom_disabled")
        return cls(
            egg_id=config.get("egg_id"),
            docker_image=config.get("docker_image") or None,
            startup_command=config.get("startup_command") or None,
            limits=ResourceLimits.model_validate(limits),
            feature_limits=FeatureLimits.model_validate(feature_limits),
            node_id=config.get("node_id"),
            node_selection_mode=config.get("node_selection_mode"),
            selected_node_id=config.get("selected_node_id"),
            location_id=config.get("location_id"),
            auto_port=config.get("auto_port"),
            additional_allocations=config.get("additional_allocations"),
            variables=config.get("variables"),
            server_name=config.get("server_name") or None,
            server_name_pattern=config.get("server_name_pattern"),
            server_description=config.get("server_description") or None,
            oom_disabled=None if oom_disabled in (None, "") else oom_disabled,
        )
