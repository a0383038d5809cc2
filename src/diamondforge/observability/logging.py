"""Structured logging for DiamondForge.

Console output goes through Rich (level chosen by the CLI ``-v`` count).
``--log`` additionally appends every event as JSON to
``{project}/logs/generation.jsonl``. Run and job identifiers are carried in
structlog context variables so concurrent story runs stay distinguishable.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from structlog.typing import Processor

LOG_FILE_NAME = "generation.jsonl"

# Chatty under DEBUG; pinned to WARNING regardless of verbosity.
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "anthropic",
    "langchain",
    "langchain_core",
    "langsmith",
    "asyncio",
)

_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None


class JSONLFileHandler(logging.FileHandler):
    """Append each record as one JSON object per line."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
            }
            if isinstance(record.msg, dict):
                event = dict(record.msg)
                event.pop("level", None)
                event.pop("timestamp", None)
                entry["event"] = event.pop("event", "")
                entry.update(event)
            else:
                entry["event"] = record.getMessage()

            if self.stream:
                self.stream.write(json.dumps(entry, default=str) + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def _open_file_handler(project_path: Path) -> JSONLFileHandler:
    global _logs_dir

    _logs_dir = project_path / "logs"
    _logs_dir.mkdir(parents=True, exist_ok=True)
    handler = JSONLFileHandler(str(_logs_dir / LOG_FILE_NAME), mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    project_path: Path | None = None,
) -> None:
    """Configure stdlib logging and structlog.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_to_file: Also write JSONL events under ``{project_path}/logs/``.
        project_path: Project directory; required when ``log_to_file`` is set.

    Raises:
        ValueError: If log_to_file=True but project_path is not provided.
    """
    global _configured, _file_handler

    if log_to_file and project_path is None:
        raise ValueError("project_path is required when log_to_file=True")

    close_file_logging()

    handlers: list[logging.Handler] = [
        RichHandler(
            console=Console(stderr=True),
            level=_console_level(verbosity),
            rich_tracebacks=True,
            tracebacks_show_locals=verbosity >= 2,
            show_time=verbosity >= 1,
            show_path=verbosity >= 2,
            markup=False,
        )
    ]
    if log_to_file and project_path is not None:
        _file_handler = _open_file_handler(project_path)
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Return a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def bind_run_context(**values: Any) -> None:
    """Attach key/value pairs (run_id, job_id, ...) to every subsequent event.

    Values live in structlog's context variables, so each asyncio task
    started after binding sees its own copy.
    """
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context(*keys: str) -> None:
    """Remove keys bound by bind_run_context (all keys when none are given)."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


def get_logs_dir() -> Path | None:
    """Directory receiving JSONL logs, or None if file logging is off."""
    return _logs_dir


def close_file_logging() -> None:
    """Close the JSONL handler if one is open."""
    global _file_handler
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
