"""LangChain-backed structured generator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from langchain_core.messages import HumanMessage, SystemMessage

from diamondforge.models.generation import OutputValidationError
from diamondforge.observability.logging import get_logger
from diamondforge.observability.tracing import build_runnable_config, traceable
from diamondforge.providers.base import (
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
)
from diamondforge.providers.structured_output import (
    unwrap_structured_result,
    with_structured_output,
)

if TYPE_CHECKING:
    from langchain_core.callbacks import BaseCallbackHandler
    from langchain_core.language_models import BaseChatModel
    from pydantic import BaseModel

log = get_logger(__name__)


def is_connectivity_error(exc: BaseException) -> bool:
    """True for network or timeout failures, including wrapped ones.

    Walks the ``__cause__`` chain since LangChain integrations re-raise
    httpx errors as their own types.
    """
    if isinstance(exc, (httpx.NetworkError, httpx.TimeoutException, ConnectionError)):
        return True
    cause = exc.__cause__
    return cause is not None and is_connectivity_error(cause)


def _status_code(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def to_provider_error(provider: str, exc: Exception) -> ProviderError:
    """Map an exception raised by a chat model onto the provider error family."""
    if isinstance(exc, ProviderError):
        return exc
    if is_connectivity_error(exc):
        return ProviderConnectionError(provider, f"Connection failed: {exc}")
    status = _status_code(exc)
    if status == 429:
        return ProviderRateLimitError(provider, "Rate limit exceeded. Please wait before retrying.")
    if status == 404:
        return ProviderModelError(provider, f"Model unavailable: {exc}")
    return ProviderError(provider, f"{type(exc).__name__}: {exc}")


class LangChainGenerator:
    """``StructuredGenerator`` over a LangChain chat model.

    Args:
        chat_model: Model from ``create_chat_model``.
        provider_name: Provider name; enables OpenAI strict schemas.
        callbacks: Optional LangChain callbacks passed on every call.
    """

    def __init__(
        self,
        chat_model: BaseChatModel,
        provider_name: str,
        callbacks: list[BaseCallbackHandler] | None = None,
    ) -> None:
        self._chat_model = chat_model
        self._provider_name = provider_name
        self._callbacks = callbacks

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @traceable("structured_generate", run_type="llm")
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[BaseModel],
    ) -> Any:
        structured = with_structured_output(self._chat_model, schema, self._provider_name)
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        config = build_runnable_config(
            run_name=f"generate_{schema.__name__}",
            tags=["diamondforge", schema.__name__],
            callbacks=self._callbacks,
        )

        try:
            result = await structured.ainvoke(messages, config=config)
        except Exception as e:
            error = to_provider_error(self._provider_name, e)
            log.error(
                "provider_call_failed",
                provider=self._provider_name,
                schema=schema.__name__,
                error_type=type(error).__name__,
                error=str(e),
            )
            raise error from e

        if isinstance(result, dict) and result.get("parsed") is None and "parsed" in result:
            problem = result.get("parsing_error") or "response could not be parsed as JSON"
            log.warning("structured_output_unparsed", schema=schema.__name__, error=str(problem))
            raise OutputValidationError(schema.__name__, [str(problem)])

        return unwrap_structured_result(result)
