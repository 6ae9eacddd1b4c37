"""Logging setup for OrderFlow service processes.

Every module logs through ``structlog.get_logger(__name__)`` with key/value
pairs. ``configure_logging`` routes those events through stdlib logging so
the console and the rotating log files carry the same records. Relay
failures and dead letters are logged at ERROR and therefore also land in the
``*_error.log`` file.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

_LEVELS_BY_ENV = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

_STRUCTURED_ENVS = ("production", "staging")

# Libraries whose INFO/DEBUG chatter drowns the relay and consumer logs
_QUIET_LOGGERS = ("protean", "redis", "asyncio", "httpx")

_MAX_BYTES = 10 * 1024 * 1024


def current_env() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level(env: str | None = None) -> str:
    """``LOG_LEVEL`` wins; otherwise the level follows the environment."""
    env = env or current_env()
    return os.getenv("LOG_LEVEL", _LEVELS_BY_ENV.get(env, "INFO")).upper()


def _rotating(path: Path, level) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(filename=path, maxBytes=_MAX_BYTES, backupCount=5, encoding="utf-8")
    handler.setLevel(level)
    return handler


def _handlers(level: str, log_dir: Path | None, prefix: str) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    if log_dir is None:
        return [console]

    log_dir.mkdir(parents=True, exist_ok=True)
    return [
        console,
        _rotating(log_dir / f"{prefix}.log", level),
        _rotating(log_dir / f"{prefix}_error.log", logging.ERROR),
    ]


def _processors(env: str) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if env in _STRUCTURED_ENVS:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=4),
            )
        )
    return processors


def configure_logging(log_dir: str | Path | None = "logs", prefix: str = "orderflow") -> str:
    """Configure stdlib handlers and structlog for the current process.

    Pass ``log_dir=None`` to log to stdout only. Returns the effective level.
    """
    env = current_env()
    level = get_log_level(env)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = _handlers(level, Path(log_dir) if log_dir is not None else None, prefix)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(env),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return level


def bind_service(service: str, **kwargs: Any) -> None:
    """Tag every subsequent log line of this context with the service name."""
    structlog.contextvars.bind_contextvars(service=service, **kwargs)
