"""Structured logging configuration with JSON formatting and sync run IDs."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, every drain gets a run ID! The worker sets it at the start of a drain
# and every log line emitted inside that task (worker, repositories, rate limiter, API
# client) carries it. When a user says "my playlist didn't sync", grep for the run_id
# of that drain and you see the whole story. contextvars are per asyncio task, so two
# concurrent drains never mix their IDs.
sync_run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "sync_run_id", default=""
)


def get_sync_run_id() -> str:
    """Get the current sync run ID ("" outside a drain)."""
    return sync_run_id_var.get()


def set_sync_run_id(run_id: str | None = None) -> str:
    """Set the sync run ID in context, generating a short one if None.

    Returns:
        The run ID that was set
    """
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]
    sync_run_id_var.set(run_id)
    return run_id


class SyncRunIdFilter(logging.Filter):
    """Add sync_run_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.sync_run_id = get_sync_run_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Formatter that prints exception chains root cause first, our frames only.

    Example output:
    ERROR │ playmirror.application.workers.playlist_sync_worker:210 │ [3f2a9c] Entry 17 failed
    ╰─► httpx.ConnectError: All connection attempts failed
        File "netease_client.py", line 88, in _get
          response = await self._client.get(path, params=params)
    ╰─► TransientRemoteError: NetEase request failed
    """

    def format(self, record: logging.LogRecord) -> str:
        run_id = getattr(record, "sync_run_id", "")
        record.run_tag = f"[{run_id}] " if run_id else ""
        return super().format(record)

    def formatException(self, ei: Any) -> str:
        _exc_type, exc_value, _exc_tb = ei
        if exc_value is None:
            return ""

        chain: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None and current not in chain:
            chain.append(current)
            current = current.__cause__ or current.__context__
        chain.reverse()

        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            if exc.__traceback__ is None:
                continue
            for frame in traceback.extract_tb(exc.__traceback__):
                if "/site-packages/" in frame.filename or "playmirror" not in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")

        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """Custom JSON formatter with additional fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        run_id = getattr(record, "sync_run_id", "")
        if run_id:
            log_record["sync_run_id"] = run_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


# Listen future me, call this ONCE at startup (CLI entry, app factory). It replaces the
# root logger's handlers, so calling it twice doesn't duplicate output. httpx/httpcore
# are quieted to WARNING - otherwise every remote call logs twice.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "playmirror",
) -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for logs (recommended for production)
        app_name: Application name to include in logs
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(SyncRunIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(run_tag)s%(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "app_name": app_name,
            "log_level": log_level,
            "json_format": json_format,
        },
    )
