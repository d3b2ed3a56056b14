from .config import get_logger, log_safely, setup_logging, setup_logging_from_settings
from .correlation import get_correlation_id, operation_context, set_correlation_id

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "log_safely",
    "set_correlation_id",
    "get_correlation_id",
    "operation_context",
]
