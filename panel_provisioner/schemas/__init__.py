"""Pydantic schemas for panel API payloads.

Usage:
    from panel_provisioner.schemas import NodeCandidate, Allocation, Egg
"""

from .panel import (
    UNLIMITED_OVERALLOCATE,
    AllocatedResources,
    Allocation,
    Egg,
    EggVariable,
    Location,
    Nest,
    NodeCandidate,
    PanelServer,
    PanelUser,
    ResourceKind,
    ServerContainer,
    StartupVariable,
)

__all__ = [
    "UNLIMITED_OVERALLOCATE",
    "AllocatedResources",
    "Allocation",
    "Egg",
    "EggVariable",
    "Location",
    "Nest",
    "NodeCandidate",
    "PanelServer",
    "PanelUser",
    "ResourceKind",
    "ServerContainer",
    "StartupVariable",
]
