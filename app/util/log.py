import logging
import logging.handlers
import pathlib
from typing import Any

import structlog

from app.internal.env_settings import ApplicationSettings


def setup_logging(settings: ApplicationSettings | None = None) -> None:
    """
    Configure structured logging with optional JSON output and file rotation.

    Args:
        settings: Application settings carrying log_level, log_format, log_file
            and config_dir. Defaults are used when omitted.
    """
    settings = settings or ApplicationSettings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if settings.log_file:
        log_path = pathlib.Path(settings.config_dir) / "logs"
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path / settings.log_file,
            maxBytes=100 * 1024 * 1024,  # 100MB
            backupCount=5,
        )
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)


def get_logger() -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.stdlib.get_logger()


logger = get_logger()
