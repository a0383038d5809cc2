"""LLM provider integrations using LangChain."""

from diamondforge.providers.base import (
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
    StructuredGenerator,
)
from diamondforge.providers.factory import (
    PROVIDER_DEFAULTS,
    create_chat_model,
    get_default_model,
    parse_provider_string,
)
from diamondforge.providers.generator import (
    LangChainGenerator,
    is_connectivity_error,
    to_provider_error,
)
from diamondforge.providers.structured_output import (
    build_json_schema,
    strip_null_values,
    unwrap_structured_result,
    with_structured_output,
)

__all__ = [
    "PROVIDER_DEFAULTS",
    "LangChainGenerator",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderModelError",
    "ProviderRateLimitError",
    "StructuredGenerator",
    "build_json_schema",
    "create_chat_model",
    "get_default_model",
    "is_connectivity_error",
    "parse_provider_string",
    "strip_null_values",
    "to_provider_error",
    "unwrap_structured_result",
    "with_structured_output",
]
