"""Allocation (IP:port) lookup and reservation on a node."""

from collections import Counter
from dataclasses import dataclass

from panel_provisioner.clients import PanelClient
from panel_provisioner.errors import (
    AllocationCreateError,
    InsufficientAllocationsError,
    NoFreePortError,
)
from panel_provisioner.logging import get_logger
from panel_provisioner.schemas import Allocation

logger = get_logger(__name__)

DEFAULT_START_PORT = 25565
DEFAULT_MAX_PORT_ATTEMPTS = 1000
MAX_PORT = 65535


@dataclass(frozen=True)
class PortRange:
    """Inclusive port search window."""

    start: int
    end: int

    @classmethod
    def build(
        cls,
        start: int | None = None,
        end: int | None = None,
        max_attempts: int = DEFAULT_MAX_PORT_ATTEMPTS,
    ) -> "PortRange":
        start = start or DEFAULT_START_PORT
        if end is None:
            end = start + max_attempts - 1
        return cls(start=start, end=min(end, MAX_PORT))


def next_free_port(used_ports: set[int], port_range: PortRange) -> int | None:
    """First port in ``port_range`` absent from ``used_ports``."""
    for port in range(port_range.start, port_range.end + 1):
        if port not in used_ports:
            return port
    return None


def most_common_ip(allocations: list[Allocation]) -> str | None:
    """IP used by most allocations; first seen wins ties."""
    if not allocations:
        return None
    counts = Counter(a.ip for a in allocations)
    return counts.most_common(1)[0][0]


class AllocationResolver:
    """Find or create allocations on a node."""

    def __init__(self, client: PanelClient):
        self.client = client

    def reserve_allocation(
        self,
        node_id: int,
        *,
        preferred_ip: str | None = None,
        port_range: PortRange | None = None,
        fresh: bool = False,
    ) -> Allocation:
        """Return an unassigned allocation, creating one if needed.

        Args:
            node_id: Node to allocate on.
            preferred_ip: IP for a newly created allocation.
            port_range: Port search window for a new allocation.
            fresh: Skip reuse and always create a new allocation.

        Raises:
            NoFreePortError: Every port in the window is taken.
            AllocationCreateError: Panel did not expose the created allocation.
        """
        port_range = port_range or PortRange.build()
        allocations = self.client.list_allocations(node_id)

        if not fresh:
            for allocation in allocations:
                if not allocation.assigned:
                    logger.info(
                        "allocation_reused",
                        node_id=node_id,
                        allocation_id=allocation.id,
                        ip=allocation.ip,
                        port=allocation.port,
                    )
                    return allocation

        used_ports = {a.port for a in allocations}
        port = next_free_port(used_ports, port_range)
        if port is None:
            raise NoFreePortError(
                node_id=node_id, start_port=port_range.start, end_port=port_range.end
            )

        ip = preferred_ip or most_common_ip(allocations) or self._node_address(node_id)
        return self._create(node_id, ip, port)

    def _node_address(self, node_id: int) -> str:
        node = self.client.get_node(node_id)
        if not node.fqdn:
            raise AllocationCreateError(f"Node {node_id} has no address to allocate on")
        return node.fqdn

    def _create(self, node_id: int, ip: str, port: int) -> Allocation:
        response = self.client.create_allocation(node_id, ip, [port])

        # Some panel builds echo the created allocations; most return 204.
        for item in response.get("data") or []:
            attributes = item.get("attributes") if isinstance(item, dict) else None
            if attributes and attributes.get("id"):
                created = Allocation.model_validate({"node_id": node_id, **attributes})
                break
        else:
            created = next(
                (
                    a
                    for a in self.client.list_allocations(node_id)
                    if a.port == port and a.ip == ip and not a.assigned
                ),
                None,
            )

        if created is None:
            raise AllocationCreateError(
                f"Failed to create new allocation {ip}:{port} on node {node_id}"
            )

        logger.info(
            "allocation_created",
            node_id=node_id,
            allocation_id=created.id,
            ip=created.ip,
            port=created.port,
        )
        return created

    def find_free_allocations(
        self,
        node_id: int,
        count: int,
        *,
        preferred_ip: str | None = None,
        exclude_ids: frozenset[int] = frozenset(),
    ) -> list[Allocation]:
        """Pick ``count`` existing unassigned allocations. Never creates any.

        With ``preferred_ip`` its allocations come first (port ascending) and
        the rest is filled from other IPs ordered by (ip, port). Without it the
        result is ordered by (ip, port).

        Raises:
            InsufficientAllocationsError: Fewer than ``count`` are free.
        """
        free = [
            a
            for a in self.client.list_allocations(node_id)
            if not a.assigned and a.id not in exclude_ids
        ]
        # Duplicate ids would double-book one allocation.
        free = list({a.id: a for a in free}.values())

        if preferred_ip:
            preferred = sorted((a for a in free if a.ip == preferred_ip), key=lambda a: a.port)
            others = sorted(
                (a for a in free if a.ip != preferred_ip), key=lambda a: (a.ip, a.port)
            )
            pool = preferred + others
        else:
            pool = sorted(free, key=lambda a: (a.ip, a.port))

        if len(pool) < count:
            raise InsufficientAllocationsError(
                node_id=node_id, required=count, available=len(pool)
            )
        return pool[:count]
