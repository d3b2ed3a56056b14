from pydantic import BaseModel, ConfigDict, Field


class NodeAllocationRange(BaseModel):
    """Per-node allocation policy from the ``node_allocation_map`` setting."""

    host: str | None = None
    port_start: int | None = Field(default=None, ge=1, le=65535)
    port_end: int | None = Field(default=None, ge=1, le=65535)


class PanelConfig(BaseModel):
    """Panel connection and placement settings for one operation.

    Resolved once per top-level call and passed explicitly to every component.
    """

    model_config = ConfigDict(frozen=True)

    panel_url: str
    api_key: str
    sso_secret: str = ""
    allowed_node_ids: frozenset[int] = frozenset()
    default_node_id: int | None = None
    node_allocation_map: dict[int, NodeAllocationRange] = Field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return self.panel_url.rstrip("/")

    def allocation_range(self, node_id: int) -> NodeAllocationRange:
        """Allocation policy for a node, empty when not configured."""
        return self.node_allocation_map.get(node_id) or NodeAllocationRange()
