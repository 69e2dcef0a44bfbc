"""
Structured Logging Infrastructure

JSON log lines in production, a readable single-line format in DEBUG mode,
and a per-request correlation ID carried through a ContextVar.
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_entry["extra"] = record.extra_data

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    """Logger whose debug/info/warning/error/critical accept ``extra_data=``"""

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra_data: dict[str, Any] | None = None,
    ) -> None:
        if extra_data:
            extra = dict(extra or {})
            extra["extra_data"] = extra_data
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


class CorrelationIdFilter(logging.Filter):
    """Filter that adds correlation_id to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "tollvault"
) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting for production
        app_name: Application name, logged once at configuration time
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        handler.addFilter(CorrelationIdFilter())

    root_logger.addHandler(handler)

    # Third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)

    logging.getLogger(app_name).debug("Logging configured")


def generate_correlation_id() -> str:
    """Generate a new correlation ID"""
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for current context"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Get current correlation ID, generating and persisting one if not set"""
    cid = correlation_id_var.get()
    if not cid:
        cid = set_correlation_id()
    return cid


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance"""
    return logging.getLogger(name)  # type: ignore


def log_async_operation(operation_name: str):
    """Decorator for logging async operations with timing"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            started = datetime.now(timezone.utc)
            logger.debug(
                f"Starting {operation_name}",
                extra_data={"operation": operation_name, "status": "started"}
            )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": (datetime.now(timezone.utc) - started).total_seconds(),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                extra_data={
                    "operation": operation_name,
                    "status": "completed",
                    "duration_seconds": (datetime.now(timezone.utc) - started).total_seconds(),
                }
            )
            return result

        return wrapper
    return decorator
