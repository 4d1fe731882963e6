"""structlog configuration.

Library modules only call ``structlog.get_logger()``; applications call
``configure_logging()`` once at start-up to choose level and renderer.
"""

import logging

import structlog

from flcore.config import settings


class LoggingState:
    """Holder for the logging configuration state.

    Uses a class attribute to manage module-level state without
    global statements.
    """

    configured: bool = False


def configure_logging(
    level: str | None = None,
    json: bool | None = None,
    force: bool = False,
) -> None:
    """Configure structlog processors and renderer.

    Args:
        level: Log level name; defaults to ``settings.log_level``
        json: Render JSON lines instead of console output; defaults to
            ``settings.log_json`` or production mode
        force: Reconfigure even if logging was already configured
    """
    if LoggingState.configured and not force:
        return

    level_name = (level or settings.log_level).upper()
    use_json = json if json is not None else (settings.log_json or settings.is_production)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level_name)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    LoggingState.configured = True
