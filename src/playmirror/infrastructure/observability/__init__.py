"""Observability infrastructure for structured logging."""

from playmirror.infrastructure.observability.logger_template import log_operation
from playmirror.infrastructure.observability.logging import (
    configure_logging,
    get_sync_run_id,
    set_sync_run_id,
)

__all__ = [
    "configure_logging",
    "get_sync_run_id",
    "log_operation",
    "set_sync_run_id",
]
