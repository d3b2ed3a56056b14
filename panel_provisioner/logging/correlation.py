from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
import uuid

import structlog


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID for current context."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def get_correlation_id() -> str | None:
    """Get correlation ID from current context."""
    return structlog.contextvars.get_contextvars().get("correlation_id")


@contextmanager
def operation_context(operation: str, **fields: Any) -> Iterator[str]:
    """Bind an operation name, a correlation id and extra fields for one call.

    An already bound correlation id is reused so nested operations share it.
    """
    correlation_id = get_correlation_id() or uuid.uuid4().hex
    with structlog.contextvars.bound_contextvars(
        operation=operation, correlation_id=correlation_id, **fields
    ):
        yield correlation_id
