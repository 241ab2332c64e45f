"""Provisioner logging config

Logging is configured when this module is imported, using structlog for structured logging. Logs are pretty-printed
locally (PROVISIONER_ENVIRONMENT='local') and JSON-formatted in other envs. LOG_RENDERER=console|json overrides that
choice and LOG_LEVEL sets the root level.

```
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

with LogContext(tenant_id="t1", binding_id="b1"):
    logger.info("Creating binding")  # Includes tenant_id and binding_id
```

The standard `logging` module is routed through the same processors, so asyncpg and newrelic log lines carry the
bound context and are rendered the same way.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog
import structlog.contextvars

from src.utils.config import get_config_value_str, get_provisioner_environment
from src.utils.newrelic_logging import newrelic_error_processor


def _is_local_environment() -> bool:
    return get_provisioner_environment() == "local"


def _get_log_renderer() -> structlog.types.Processor:
    """ConsoleRenderer for local dev, JSONRenderer everywhere else, unless LOG_RENDERER says otherwise."""
    log_renderer = (get_config_value_str("LOG_RENDERER") or "").lower()
    if log_renderer == "console":
        use_console = True
    elif log_renderer == "json":
        use_console = False
    else:
        use_console = _is_local_environment()

    if use_console:
        return structlog.dev.ConsoleRenderer(
            colors=True,
            pad_event_to=0,
            exception_formatter=structlog.dev.plain_traceback,
            sort_keys=True,
            event_key="message",
        )
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Configure structlog and the root stdlib logger."""
    common_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.contextvars.merge_contextvars,
        structlog.processors.EventRenamer("message"),
        newrelic_error_processor,  # Send error-level logs to New Relic
        structlog.stdlib.filter_by_level,  # Must come after add_log_level
    ]

    structlog.configure(
        processors=common_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers do their own level filtering, and filter_by_level expects a structlog logger
    foreign_processors = [p for p in common_processors if p != structlog.stdlib.filter_by_level]
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_get_log_renderer(),
            foreign_pre_chain=foreign_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(stream_handler)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))


configure_logging()


def add_log_context(**kwargs: Any) -> None:
    """Bind values into the logging context of the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


# Binds context for the duration of a with block
LogContext = structlog.contextvars.bound_contextvars


def get_logger(name: str, **kwargs: Any) -> structlog.BoundLogger:
    """Get a logger instance, usually with ``__name__``. Extra kwargs are bound to every line."""
    return structlog.get_logger(name, **kwargs)
