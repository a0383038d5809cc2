"""Observability module for DiamondForge.

Provides structured logging, run correlation, and optional LangSmith tracing.
"""

from diamondforge.observability.logging import (
    bind_run_context,
    clear_run_context,
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)
from diamondforge.observability.tracing import (
    LANGSMITH_AVAILABLE,
    build_runnable_config,
    generate_run_id,
    get_run_id,
    set_run_id,
    traceable,
)

__all__ = [
    "LANGSMITH_AVAILABLE",
    "bind_run_context",
    "build_runnable_config",
    "clear_run_context",
    "close_file_logging",
    "configure_logging",
    "generate_run_id",
    "get_logger",
    "get_logs_dir",
    "get_run_id",
    "set_run_id",
    "traceable",
]
