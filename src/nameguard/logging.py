"""Logging configuration for NameGuard.

Every module logs through :func:`get_logger` with snake_case event names and
keyword context. ``setup_logging`` routes those events through the standard
library so the console and the rotating file share one processor chain.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from nameguard.config import Settings, get_settings

# Gateway heartbeats and pool chatter drown out moderation events at INFO
_NOISY_LOGGERS = ("discord", "discord.gateway", "discord.http", "asyncpg")

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def setup_logging() -> None:
    """Configure structured logging with console and optional file output."""
    settings = get_settings()
    level = settings.numeric_log_level

    root = logging.getLogger()
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(_formatter(json_output=not settings.is_development))
    root.addHandler(console_handler)

    file_handler = _file_handler(settings) if settings.log_to_file else None
    if file_handler is not None:
        file_handler.setLevel(level)
        file_handler.setFormatter(_formatter(json_output=True))
        root.addHandler(file_handler)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def _formatter(*, json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]
    )


def _file_handler(settings: Settings) -> RotatingFileHandler | None:
    """Build the rotating JSON file handler, or ``None`` if the path is unusable."""
    try:
        Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            filename=settings.log_file_path,
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        # Console logging still works; report on stderr since logging is not ready yet
        print(f"Warning: Could not set up file logging: {e}", file=sys.stderr)
        return None
