"""Node selection with capacity checks.

Resolution order: explicit node, client-selected node, first allowed node
with capacity in the requested location, global default node.

Capacity checks fail closed on a confirmed shortfall and fail open when the
node's metadata cannot be read.
"""

from dataclasses import dataclass

from pydantic import ValidationError

from panel_provisioner.clients import PanelClient
from panel_provisioner.contracts.dto import PanelConfig, PlacementRequest
from panel_provisioner.errors import (
    ApiError,
    InsufficientResourcesError,
    NoNodeSelectedError,
    NoSuitableNodeError,
    RemoteStateError,
)
from panel_provisioner.logging import get_logger, log_safely
from panel_provisioner.schemas import NodeCandidate

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResourceRequirement:
    """Memory and disk (MB) a new server needs on its node."""

    memory: int
    disk: int

    @classmethod
    def for_request(cls, request: PlacementRequest) -> "ResourceRequirement":
        return cls(memory=request.limits.memory, disk=request.limits.disk)


@dataclass(frozen=True)
class NodeSelection:
    """Chosen node and the rule that chose it."""

    node_id: int
    source: str


class NodeSelector:
    """Pick a node for a placement request."""

    def __init__(self, client: PanelClient):
        self.client = client

    def select(
        self,
        request: PlacementRequest,
        panel_config: PanelConfig,
        required: ResourceRequirement | None = None,
    ) -> NodeSelection:
        """Resolve a node id and verify it can fit ``required``.

        Raises:
            NoSuitableNodeError: Location given but no allowed node fits.
            NoNodeSelectedError: Nothing resolved a node.
            InsufficientResourcesError: Chosen node confirmed too small.
        """
        required = required or ResourceRequirement.for_request(request)
        selection = self._resolve(request, panel_config, required)

        # Final check applies to every path, including explicit choices.
        self.check_capacity(selection.node_id, required)

        logger.info(
            "node_selected",
            node_id=selection.node_id,
            source=selection.source,
            required_memory=required.memory,
            required_disk=required.disk,
        )
        return selection

    def _resolve(
        self,
        request: PlacementRequest,
        panel_config: PanelConfig,
        required: ResourceRequirement,
    ) -> NodeSelection:
        if request.node_id is not None:
            return NodeSelection(request.node_id, "explicit")

        if request.wants_client_node:
            return NodeSelection(request.selected_node_id, "client")

        if request.location_id is not None:
            node_id = self._first_fit_in_location(
                request.location_id, panel_config.allowed_node_ids, required
            )
            if node_id is None:
                raise NoSuitableNodeError(request.location_id)
            return NodeSelection(node_id, "location")

        if panel_config.default_node_id:
            return NodeSelection(panel_config.default_node_id, "default")

        raise NoNodeSelectedError()

    def nodes_in_location(self, location_id: int) -> list[NodeCandidate]:
        """Nodes of a location, in panel listing order."""
        return [n for n in self.client.list_nodes() if n.location_id == location_id]

    def _first_fit_in_location(
        self,
        location_id: int,
        allowed_node_ids: frozenset[int],
        required: ResourceRequirement,
    ) -> int | None:
        for node in self.nodes_in_location(location_id):
            if allowed_node_ids and node.id not in allowed_node_ids:
                logger.debug("node_skipped_not_allowed", node_id=node.id, location_id=location_id)
                continue
            try:
                self.check_capacity(node.id, required)
            except InsufficientResourcesError as e:
                log_safely(
                    logger,
                    "debug",
                    "node_skipped_insufficient",
                    node_id=node.id,
                    kind=e.kind,
                    required=e.required,
                    available=e.available,
                )
                continue
            return node.id
        return None

    def check_capacity(self, node_id: int, required: ResourceRequirement) -> None:
        """Raise InsufficientResourcesError when the node cannot fit ``required``.

        Failures reading node metadata, malformed payloads included, are logged
        and treated as a pass.
        """
        try:
            node = self.client.get_node(node_id)
        except (ApiError, RemoteStateError, ValidationError) as e:
            log_safely(
                logger,
                "warning",
                "node_capacity_unknown",
                node_id=node_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        for kind, amount in (("memory", required.memory), ("disk", required.disk)):
            available = node.free_capacity(kind)
            if available < amount:
                raise InsufficientResourcesError(
                    kind=kind, required=amount, available=available, node_id=node_id
                )
