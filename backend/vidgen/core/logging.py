"""structlog configuration.

JSON lines in production, a colored console in debug. Stdlib loggers
(uvicorn, SQLAlchemy, httpx) are routed through the same processors, so
every line carries the request's correlation id and no provider credential
is ever written out in full.
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

# Event keys whose values are provider credentials or session tokens
SENSITIVE_KEYS = frozenset({"secret", "token", "api_key", "authorization", "cookie", "cookies"})


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def redact_secrets(logger, method, event_dict):
    """Replace credential values with a short mask."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > 12:
            event_dict[key] = f"{value[:4]}...{value[-4:]}"
        elif value is not None:
            event_dict[key] = "****"
    return event_dict


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Install the processor chain. Call before anything logs.

    Args:
        log_level: Root level for the stdlib bridge
        json_logs: JSONRenderer when True, ConsoleRenderer otherwise
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "vidgen": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": pre_chain,
                "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            },
        },
        "handlers": {
            "stdout": {"class": "logging.StreamHandler", "formatter": "vidgen", "stream": "ext://sys.stdout"},
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {
            # Per-request noise; our own events already cover these
            "uvicorn.access": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "aiosqlite": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
