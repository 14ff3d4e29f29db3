"""
Structured logging configuration with structlog.

- Human-readable colored console logs for development
- Structured JSON logs for production (or LOG_JSON_FORMAT=True)
- Standard library loggers (motor, aiohttp, ...) rendered through the same
  processor chain, so third-party output looks like ours
- Third-party library noise filtering
- Redaction of credential-like keys
"""

import logging
import logging.config
from typing import Any
import structlog
from structlog.types import EventDict, Processor
from chat_sync.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add application context to every log entry.

    - Service name (for observability stack filtering)
    - Application name and version
    - Environment (dev/staging/prod)
    """
    event_dict["service"] = "chat-sync"
    event_dict["app"] = settings.APP_NAME
    event_dict["version"] = settings.APP_VERSION
    event_dict["environment"] = settings.ENVIRONMENT
    return event_dict


def add_severity_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add explicit severity level for log aggregation filtering."""
    if "level" in event_dict:
        event_dict["severity"] = event_dict["level"].upper()
    return event_dict


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact sensitive data.

    Identity tokens and storage credentials pass through the auth and upload
    paths; none of them may reach the log output.
    """
    sensitive_keys = ["password", "token", "api_key", "secret", "authorization", "credential"]

    for key in list(event_dict.keys()):
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            event_dict[key] = "***REDACTED***"

    return event_dict


def _use_json() -> bool:
    return settings.LOG_JSON_FORMAT or settings.ENVIRONMENT == "production"


def setup_logging() -> None:
    """
    Configure the complete logging stack.

    1. Sets up structlog with the shared processor chain
    2. Picks JSON or console rendering based on environment
    3. Routes standard library logging through structlog's formatter
    4. Quiets chatty third-party loggers
    """
    log_level_name = settings.LOG_LEVEL.upper()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,  # conversation_id / user_id bound per session
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        add_severity_level,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if _use_json():
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": renderer,
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "level": log_level_name,
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "structured",
            },
            "error": {
                "level": "ERROR",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "structured",
            },
        },
        "loggers": {
            "": {
                "handlers": ["default", "error"],
                "level": log_level_name,
                "propagate": False,
            },
            "chat_sync": {
                "handlers": ["default", "error"],
                "level": log_level_name,
                "propagate": False,
            },
            # Third-party library noise filtering
            "motor": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "pymongo": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "aiohttp": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "asyncio": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    })

    logger = get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=log_level_name,
        environment=settings.ENVIRONMENT,
        format="json" if _use_json() else "console",
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message_sent", conversation_id="a1b2", kind="text")
    """
    return structlog.get_logger(name)


class PerformanceLogger:
    """
    Context manager for timing store round-trips.

    Usage:
        with PerformanceLogger("store_get", logger, path=path):
            doc = await collection.find_one(...)
    """

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger, **context):
        self.operation = operation
        self.logger = logger
        self.context = context
        self.start_time = None

    def __enter__(self):
        import time
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        import time
        duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is None:
            self.logger.debug(
                "operation_completed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                **self.context
            )
        else:
            self.logger.error(
                "operation_failed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context
            )

        # Don't suppress exceptions
        return False
