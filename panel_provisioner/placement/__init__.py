"""Placement: node choice, allocations and environment resolution."""

from .allocations import AllocationResolver, PortRange, most_common_ip, next_free_port
from .environment import (
    AUTO_PORT,
    EnvironmentResult,
    apply_auto_port,
    build_environment,
    generate_secret,
)
from .nodes import NodeSelection, NodeSelector, ResourceRequirement

__all__ = [
    "AllocationResolver",
    "PortRange",
    "most_common_ip",
    "next_free_port",
    "AUTO_PORT",
    "EnvironmentResult",
    "apply_auto_port",
    "build_environment",
    "generate_secret",
    "NodeSelection",
    "NodeSelector",
    "ResourceRequirement",
]
