"""
Structured logging module.

Provides JSON-formatted structured logging with request and sync-run context.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Optional
from contextvars import ContextVar


# Context variables attached to every record
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
sync_run_id_var: ContextVar[Optional[str]] = ContextVar("sync_run_id", default=None)


_RESERVED_ATTRS = frozenset(
    (
        "name", "msg", "args", "levelname", "levelno",
        "pathname", "filename", "module", "exc_info",
        "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread",
        "threadName", "processName", "process", "message",
        "taskName",
    )
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Every record becomes one JSON line with the keyword fields passed
    to the logger merged in at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        sync_run_id = sync_run_id_var.get()
        if sync_run_id:
            log_data["sync_run_id"] = sync_run_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = self._serialize_value(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)

    def _serialize_value(self, value: Any) -> Any:
        """Make a value JSON-safe."""
        if isinstance(value, (str, int, float, bool, type(None))):
            return value
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self._serialize_value(v) for v in value]
        if isinstance(value, dict):
            return {str(k): self._serialize_value(v) for k, v in value.items()}
        return str(value)


class StructuredLogger(logging.Logger):
    """
    Logger with structured logging support.

    Keyword arguments other than ``exc_info`` and ``extra`` become
    fields of the emitted record.
    """

    def _log_with_extras(
        self,
        level: int,
        msg: str,
        args: tuple,
        **kwargs: Any,
    ) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", None)
        extra = dict(kwargs.pop("extra", None) or {})
        extra.update(kwargs)
        # LogRecord refuses extras that shadow its own attributes
        extra = {
            (f"{key}_" if key in _RESERVED_ATTRS or key == "asctime" else key): value
            for key, value in extra.items()
        }
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message with extra fields."""
        self._log_with_extras(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message with extra fields."""
        self._log_with_extras(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message with extra fields."""
        self._log_with_extras(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log error message with extra fields."""
        self._log_with_extras(logging.ERROR, msg, args, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log critical message with extra fields."""
        self._log_with_extras(logging.CRITICAL, msg, args, **kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """
    Set up root logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Whether to use JSON format.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.
    """
    return logging.getLogger(name)  # type: ignore


def set_request_id(request_id: str) -> None:
    """Set the HTTP request ID in context."""
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current HTTP request ID from context."""
    return request_id_var.get()


def set_sync_run_id(run_id: Optional[str]) -> None:
    """
    Tag subsequent log records in this context with a sync run ID.

    Background rebuilds and reconciliation runs set this so every batch
    log line can be correlated with the run that produced it.

    Args:
        run_id: Run identifier, or None to clear it.
    """
    sync_run_id_var.set(run_id)


def get_sync_run_id() -> Optional[str]:
    """Get the current sync run ID from context."""
    return sync_run_id_var.get()
