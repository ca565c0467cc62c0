import logging
import sys
import structlog
from community_chat.core.config import settings


def add_service_context(logger, method_name, event_dict):
    """Tag every event with the service and environment so chat logs can be split from other services."""
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def resolve_log_level(level_name: str) -> int:
    # Unknown names fall back to INFO rather than failing startup
    return logging.getLevelNamesMapping().get((level_name or "").upper(), logging.INFO)


def setup_logging():
    """
    Configure structlog for the chat service.
    JSON lines in production, console rendering elsewhere. LOG_LEVEL filters both
    structlog events and standard library loggers (SQLAlchemy, uvicorn, httpx).
    """
    level = resolve_log_level(settings.LOG_LEVEL)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.ENVIRONMENT == "production":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
