"""Pydantic schemas for panel application API resources.

The panel wraps single resources as ``{"object": ..., "attributes": {...}}``
and collections as ``{"data": [{"attributes": {...}}], "meta": {...}}``.
These schemas describe the ``attributes`` part and keep unknown fields.
"""

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

UNLIMITED_OVERALLOCATE = -1

ResourceKind = Literal["memory", "disk"]


class AllocatedResources(BaseModel):
    """Resources already promised to servers on a node."""

    model_config = ConfigDict(extra="allow")

    memory: int = 0
    disk: int = 0


class NodeCandidate(BaseModel):
    """Node resource from GET /api/application/nodes[/{id}].

    ``allocated_resources`` is only reliable on the single-node endpoint.
    """

    model_config = ConfigDict(extra="allow")

    id: int = Field(..., description="Panel node ID")
    name: str | None = Field(None, description="Node display name")
    location_id: int | None = Field(None, description="Location the node belongs to")
    fqdn: str | None = Field(None, description="Node address")
    scheme: str | None = None
    daemon_listen: int | None = None
    maintenance_mode: bool = False
    public: bool = True

    memory: int = Field(0, description="Total memory in MB")
    memory_overallocate: int = Field(0, description="Overallocation percent, -1 = unlimited")
    disk: int = Field(0, description="Total disk in MB")
    disk_overallocate: int = Field(0, description="Overallocation percent, -1 = unlimited")
    allocated_resources: AllocatedResources = Field(default_factory=AllocatedResources)

    def free_capacity(self, kind: ResourceKind) -> float:
        """Free MB of ``kind``: total * (1 + overallocate/100) - used.

        Unlimited overallocation yields ``math.inf``.
        """
        if kind == "memory":
            total, percent, used = (
                self.memory,
                self.memory_overallocate,
                self.allocated_resources.memory,
            )
        else:
            total, percent, used = (
                self.disk,
                self.disk_overallocate,
                self.allocated_resources.disk,
            )

        if percent == UNLIMITED_OVERALLOCATE:
            return math.inf
        return total * (1 + percent / 100) - used


class Location(BaseModel):
    """Location resource from GET /api/application/locations."""

    model_config = ConfigDict(extra="allow")

    id: int
    short: str | None = None
    long: str | None = None


class Allocation(BaseModel):
    """Allocation resource from GET /api/application/nodes/{id}/allocations."""

    model_config = ConfigDict(extra="allow")

    id: int
    ip: str
    port: int
    alias: str | None = None
    assigned: bool = False
    node_id: int | None = None


class EggVariable(BaseModel):
    """Declared egg environment variable."""

    model_config = ConfigDict(extra="allow")

    env_variable: str
    default_value: str | None = None
    name: str | None = None
    user_editable: bool | None = None


class Egg(BaseModel):
    """Egg (deployable application template) with its variable schema."""

    model_config = ConfigDict(extra="allow")

    id: int
    nest: int | None = None
    name: str | None = None
    docker_image: str | None = None
    startup: str | None = None
    variables: list[EggVariable] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Egg":
        """Build from a GET .../eggs/{id}?include=variables response.

        Relationships are nested inside ``attributes`` by the panel, but
        older builds put them next to it; both are accepted.
        """
        attributes = dict(payload.get("attributes") or {})
        relationships = (
            attributes.pop("relationships", None) or payload.get("relationships") or {}
        )
        variables = (relationships.get("variables") or {}).get("data") or []
        attributes["variables"] = [item.get("attributes", {}) for item in variables]
        return cls.model_validate(attributes)


class Nest(BaseModel):
    """Nest with its eggs from GET /api/application/nests?include=eggs."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: str | None = None
    eggs: list[Egg] = Field(default_factory=list)

    @classmethod
    def from_attributes_payload(cls, attributes: dict[str, Any]) -> "Nest":
        data = dict(attributes)
        relationships = data.pop("relationships", None) or {}
        eggs = (relationships.get("eggs") or {}).get("data") or []
        data["eggs"] = [Egg.from_payload(item) for item in eggs]
        return cls.model_validate(data)


class ServerContainer(BaseModel):
    """Container section of a server resource."""

    model_config = ConfigDict(extra="allow")

    startup_command: str | None = None
    image: str | None = None
    environment: dict[str, Any] = Field(default_factory=dict)


class PanelServer(BaseModel):
    """Server resource from GET /api/application/servers/{id}."""

    model_config = ConfigDict(extra="allow")

    id: int
    identifier: str | None = None
    uuid: str | None = None
    name: str | None = None
    user: int | None = None
    node: int | None = None
    allocation: int | None = None
    egg: int | None = None
    suspended: bool = False
    container: ServerContainer = Field(default_factory=ServerContainer)


class PanelUser(BaseModel):
    """User resource from GET /api/application/users."""

    model_config = ConfigDict(extra="allow")

    id: int
    email: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class StartupVariable(BaseModel):
    """Server startup variable from GET /api/application/servers/{id}/startup."""

    model_config = ConfigDict(extra="allow")

    env_variable: str
    server_value: str | None = None
    default_value: str | None = None
