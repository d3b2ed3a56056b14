"""Reconcile a service record's status with its billing order status."""

from panel_provisioner.contracts.dto import (
    STATUSES_WITH_SERVER,
    Order,
    ServiceRecord,
    ServiceStatus,
)
from panel_provisioner.logging import get_logger

logger = get_logger(__name__)

ORDER_STATUS_MAP: dict[str, ServiceStatus] = {
    "pending_setup": ServiceStatus.PENDING,
    "active": ServiceStatus.ACTIVE,
    "suspended": ServiceStatus.SUSPENDED,
    "canceled": ServiceStatus.DELETED,
    "cancelled": ServiceStatus.DELETED,
}


def sync_status(order: Order, record: ServiceRecord) -> ServiceRecord:
    """Return ``record`` with the status mirrored from ``order``.

    The record comes back unchanged when the order status is unknown, already
    matches, or would break the remote-server invariant (e.g. ``active``
    without a remote server).
    """
    target = ORDER_STATUS_MAP.get((order.status or "").lower())
    if target is None or target == record.status:
        return record

    if (target in STATUSES_WITH_SERVER) != record.has_server:
        logger.info(
            "status_sync_skipped",
            service_id=record.id,
            order_id=order.id,
            order_status=order.status,
            service_status=record.status.value,
        )
        return record

    logger.info(
        "status_synced",
        service_id=record.id,
        order_id=order.id,
        from_status=record.status.value,
        to_status=target.value,
    )
    return record.transition(status=target)
