"""Run correlation and optional LangSmith tracing.

Every story run gets a run ID held in a context variable. When ``langsmith``
is installed and tracing is enabled through its environment variables,
``traceable`` wraps coroutines in LangSmith spans tagged with that ID;
otherwise it returns the coroutine function untouched.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from functools import wraps
from typing import TYPE_CHECKING, Any, Literal, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from langchain_core.callbacks import BaseCallbackHandler
    from langchain_core.runnables import RunnableConfig

RunType = Literal["tool", "chain", "llm", "retriever", "embedding", "prompt", "parser"]

# langsmith is an optional extra
try:
    from langsmith import traceable as ls_traceable
    from langsmith.run_helpers import get_current_run_tree as ls_get_current_run_tree

    LANGSMITH_AVAILABLE = True
except ImportError:
    LANGSMITH_AVAILABLE = False
    ls_traceable = None  # type: ignore[assignment]
    ls_get_current_run_tree = None  # type: ignore[assignment]


_run_id: ContextVar[str | None] = ContextVar("diamondforge_run_id", default=None)

P = ParamSpec("P")
R = TypeVar("R")


def generate_run_id() -> str:
    """Return a fresh UUID string for correlating one story run."""
    return str(uuid.uuid4())


def set_run_id(run_id: str) -> None:
    """Set the run ID for the current context."""
    _run_id.set(run_id)


def get_run_id() -> str | None:
    """Return the run ID of the current context, if any."""
    return _run_id.get()


def _span_inputs(inputs: dict[str, Any]) -> dict[str, Any]:
    """Reduce traced arguments to primitives.

    Generation state and collaborators are large and not worth serializing
    into every span; their type name is recorded instead.
    """
    safe: dict[str, Any] = {}
    for key, value in inputs.items():
        if isinstance(value, (str, int, float, bool, type(None))):
            safe[key] = value
        else:
            safe[key] = f"<{type(value).__name__}>"
    return safe


def traceable(
    name: str | None = None,
    *,
    run_type: RunType = "chain",
    tags: list[str] | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]]:
    """Trace an async function with LangSmith when available.

    Args:
        name: Span name. Defaults to the function name.
        run_type: LangSmith run type.
        tags: Tags attached to the span.

    Returns:
        A decorator; identity when langsmith is not installed.
    """
    effective_tags = list(tags) if tags else []

    def decorator(
        func: Callable[P, Coroutine[Any, Any, R]],
    ) -> Callable[P, Coroutine[Any, Any, R]]:
        if not LANGSMITH_AVAILABLE or ls_traceable is None:
            return func

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if ls_get_current_run_tree is not None and (run_id := get_run_id()):
                try:
                    run_tree = ls_get_current_run_tree()
                except Exception:
                    run_tree = None
                if run_tree is not None:
                    run_tree.metadata["diamondforge_run_id"] = run_id
            return await func(*args, **kwargs)

        traced: Callable[P, Coroutine[Any, Any, R]] = ls_traceable(
            run_type,
            name=name or func.__name__,
            tags=effective_tags,
            process_inputs=_span_inputs,
        )(wrapper)  # type: ignore[assignment]
        return traced

    return decorator


def build_runnable_config(
    *,
    run_name: str | None = None,
    tags: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
    callbacks: list[BaseCallbackHandler] | None = None,
) -> RunnableConfig:
    """Build the RunnableConfig passed to ``ainvoke`` on chat models.

    The current run ID is copied into the metadata so provider-side traces
    can be joined back to a story run.
    """
    from langchain_core.runnables import RunnableConfig

    meta = dict(metadata) if metadata else {}
    if run_id := get_run_id():
        meta["diamondforge_run_id"] = run_id

    config = RunnableConfig(metadata=meta)
    if run_name:
        config["run_name"] = run_name
    if tags:
        config["tags"] = list(tags)
    if callbacks:
        config["callbacks"] = callbacks
    return config
