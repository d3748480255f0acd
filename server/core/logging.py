"""Structured logging configuration.

SQL text and connection descriptors end up in many log events; the
``_scrub_event`` processor shortens the former and masks passwords in the
latter before any renderer sees them.
"""

import sys
import structlog
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from core.cache_keys import sanitize_descriptor
from core.config import Settings

SQL_LOG_LIMIT = 100

# Event keys holding connection descriptors
DESCRIPTOR_FIELDS = ("target", "descriptor", "url")


def truncate_sql(sql_text: Optional[str], limit: int = SQL_LOG_LIMIT) -> str:
    """Shorten SQL text for log lines."""
    text = (sql_text or "").strip()
    return text if len(text) <= limit else f"{text[:limit]}..."


def _scrub_event(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(event_dict.get("sql"), str):
        event_dict["sql"] = truncate_sql(event_dict["sql"])
    for name in DESCRIPTOR_FIELDS:
        value = event_dict.get(name)
        if isinstance(value, str) and "://" in value:
            event_dict[name] = sanitize_descriptor(value)
    return event_dict


def _handlers(settings: Settings, level: int) -> list:
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(settings: Settings) -> None:
    """Configure structlog on top of stdlib logging."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, handlers=_handlers(settings, level),
                        format="%(message)s", force=True)

    # Engine echo is controlled by DATABASE_ECHO, not the root level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _scrub_event,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
        processors.insert(0, structlog.stdlib.add_logger_name)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=30,
            exception_formatter=structlog.dev.plain_traceback
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_execution_time(logger: structlog.BoundLogger, operation: str,
                       start_time: float, end_time: float, **kwargs) -> float:
    """Log how long an operation took. Returns the duration in milliseconds."""
    execution_time_ms = round((end_time - start_time) * 1000, 2)
    logger.info(
        "Operation completed",
        operation=operation,
        execution_time_ms=execution_time_ms,
        **kwargs
    )
    return execution_time_ms


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: Optional[bool] = None, **kwargs) -> None:
    """Log cache operations at debug level."""
    log_data = {
        "operation": operation,
        "cache_key": key,
        **kwargs
    }

    if hit is not None:
        log_data["cache_hit"] = hit

    logger.debug("Cache operation", **log_data)
