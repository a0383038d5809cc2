"""Collaborator protocol and provider error types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pydantic import BaseModel


class StructuredGenerator(Protocol):
    """Anything that can turn a prompt pair into schema-shaped output.

    Implementations return whatever the provider produced for ``schema``
    (usually a dict); callers run it through the matching ``parse_*``
    function. Transport failures raise ``ProviderError`` subclasses and are
    fatal to a run. Output that clearly does not fit the schema raises
    ``OutputValidationError`` and may be retried by the caller.
    """

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[BaseModel],
    ) -> Any:
        """Generate one structured response.

        Args:
            system_prompt: Instructions and role for the model.
            user_prompt: The concrete request.
            schema: Pydantic model describing the expected JSON object.

        Returns:
            Raw structured value (dict, model instance or JSON string).

        Raises:
            ProviderError: If the provider cannot be reached or refuses.
            OutputValidationError: If the response cannot be read as ``schema``.
        """
        ...


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderConnectionError(ProviderError):
    """Raised when connection to the provider fails."""


class ProviderRateLimitError(ProviderError):
    """Raised when rate limit is exceeded."""


class ProviderModelError(ProviderError):
    """Raised when the requested model is unavailable."""
