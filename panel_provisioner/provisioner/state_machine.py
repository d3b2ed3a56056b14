"""Service record lifecycle.

  pending -> active <-> suspended -> deleted
  deleted --(provision)--> active

Self-transitions on active, suspended and deleted keep suspend, unsuspend and
unprovision idempotent.
"""

from types import MappingProxyType

from panel_provisioner.contracts.dto import ServiceStatus
from panel_provisioner.errors import InvalidStateTransition

ALLOWED_TRANSITIONS = MappingProxyType(
    {
        ServiceStatus.PENDING: frozenset({ServiceStatus.ACTIVE, ServiceStatus.DELETED}),
        ServiceStatus.ACTIVE: frozenset(
            {ServiceStatus.ACTIVE, ServiceStatus.SUSPENDED, ServiceStatus.DELETED}
        ),
        ServiceStatus.SUSPENDED: frozenset(
            {ServiceStatus.SUSPENDED, ServiceStatus.ACTIVE, ServiceStatus.DELETED}
        ),
        ServiceStatus.DELETED: frozenset({ServiceStatus.DELETED, ServiceStatus.ACTIVE}),
    }
)


def can_transition(from_state: ServiceStatus, to_state: ServiceStatus) -> bool:
    return to_state in ALLOWED_TRANSITIONS.get(from_state, frozenset())


def ensure_transition(from_state: ServiceStatus, to_state: ServiceStatus) -> None:
    if not can_transition(from_state, to_state):
        raise InvalidStateTransition(from_state.value, to_state.value)
