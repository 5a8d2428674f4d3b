"""Configuration du logging (structlog -> logging stdlib)."""

import logging

import structlog

from stockledger.app.core.config import LOG_JSON, LOG_LEVEL


def configure_logging(level: str = LOG_LEVEL, json: bool = LOG_JSON) -> None:
    """Branche structlog sur le logging stdlib au niveau ``level``."""
    logging.basicConfig(format="%(message)s", level=level)

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Réduit le bruit des loggers de librairies
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
