"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator

import structlog

_LOGGING_INITIALISED = False


def _default_log_dir() -> Path:
    env_root = os.environ.get("TIMELINE_EXPORT_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = _default_log_dir()
    error_log = log_dir / "error.log"
    export_log = log_dir / "export.log"
    sessions_dir = log_dir / "sessions"
    sessions_dir.mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    export_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.json.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "export_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(export_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "timeline_export": {
                        "handlers": ["console", "export_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        # Forward structlog events to stdlib; JSON rendering happens at handler level
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("timeline_export")


def session_logger(username: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one export session and ensure its file handler exists."""

    logger = configure_logging(verbose)
    session_log_path = _default_log_dir() / "sessions" / f"{username}.log"
    session_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"timeline_export.session.{username}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(session_log_path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(session_log_path, encoding="utf-8")
        global_logger = logging.getLogger("timeline_export")
        if global_logger.handlers:
            file_handler.setFormatter(global_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(username=username)


@contextmanager
def session_context(username: str, **values: Any) -> Iterator[None]:
    """Tag every structlog event emitted inside the block with the export session.

    Engine and storage loggers are not bound to a session themselves; the
    contextvars merged by :func:`configure_logging` carry it for them.
    """

    with structlog.contextvars.bound_contextvars(session=username, **values):
        yield


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_session_logs() -> Iterable[Path]:
    """Yield available per-session log file paths."""

    sessions_dir = _default_log_dir() / "sessions"
    if not sessions_dir.exists():
        return []
    return sorted(p for p in sessions_dir.glob("*.log"))


def log_dir() -> Path:
    return _default_log_dir()


__all__ = [
    "available_session_logs",
    "configure_logging",
    "log_dir",
    "session_context",
    "session_logger",
    "tail_log",
]
