"""Chat model construction.

Provider strings look like ``openai/gpt-5-mini`` or ``ollama/qwen3:8b``.
Models are created through LangChain's ``init_chat_model``; this module
only resolves credentials and hosts before that call.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from diamondforge.observability.logging import get_logger
from diamondforge.providers.base import ProviderError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)

# None means the model must be named explicitly
PROVIDER_DEFAULTS: dict[str, str | None] = {
    "ollama": None,
    "openai": "gpt-5-mini",
    "anthropic": "claude-sonnet-4-20250514",
    "google": "gemini-2.5-flash",
}

# Environment variable holding the credential or host, per provider
_PROVIDER_ENV: dict[str, tuple[str, str]] = {
    "openai": ("api_key", "OPENAI_API_KEY"),
    "anthropic": ("api_key", "ANTHROPIC_API_KEY"),
    "google": ("api_key", "GOOGLE_API_KEY"),
    "ollama": ("base_url", "OLLAMA_HOST"),
}

_PACKAGES = {
    "ollama": "langchain-ollama",
    "openai": "langchain-openai",
    "anthropic": "langchain-anthropic",
    "google": "langchain-google-genai",
}

DEFAULT_OLLAMA_NUM_CTX = 32_768


def _normalize_provider(provider_name: str) -> str:
    name = provider_name.strip().lower()
    return "google" if name == "gemini" else name


def get_default_model(provider_name: str) -> str | None:
    """Default model for a provider, or None if it must be given explicitly."""
    return PROVIDER_DEFAULTS.get(_normalize_provider(provider_name))


def parse_provider_string(provider_string: str) -> tuple[str, str]:
    """Split ``provider/model`` into its parts.

    A bare provider name resolves to that provider's default model.

    Raises:
        ProviderError: If the provider is unknown or has no default model.
    """
    if "/" in provider_string:
        provider_name, model = provider_string.split("/", 1)
    else:
        provider_name, model = provider_string, ""

    provider = _normalize_provider(provider_name)
    if provider not in PROVIDER_DEFAULTS:
        raise ProviderError(provider, f"Unknown provider: {provider}")

    model = model.strip() or (get_default_model(provider) or "")
    if not model:
        raise ProviderError(
            provider,
            f"Provider '{provider}' requires explicit model. Use {provider}/<model-name>",
        )
    return provider, model


def _query_ollama_num_ctx(host: str, model: str) -> int | None:
    """Read the context window configured for an Ollama model."""
    import httpx

    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(f"{host}/api/show", json={"model": model})
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPError as exc:
        log.warning("ollama_show_failed", model=model, error=str(exc))
        return None

    for line in str(data.get("parameters", "")).splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "num_ctx" and parts[-1].isdigit():
            return int(parts[-1])
    return None


def _resolve_provider_kwargs(provider: str, model: str, kwargs: dict[str, Any]) -> dict[str, Any]:
    kwargs = dict(kwargs)
    key, env_var = _PROVIDER_ENV[provider]
    value = kwargs.pop("host", None) or kwargs.get(key) or os.getenv(env_var)
    if not value:
        log.error("provider_config_error", provider=provider, missing=env_var)
        raise ProviderError(provider, f"{env_var} not configured. Set the {env_var} environment variable.")
    kwargs[key] = value

    if provider == "ollama" and "num_ctx" not in kwargs:
        kwargs["num_ctx"] = _query_ollama_num_ctx(value, model) or DEFAULT_OLLAMA_NUM_CTX
    return kwargs


def create_chat_model(provider_name: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Create a LangChain chat model.

    Args:
        provider_name: ollama, openai, anthropic or google.
        model: Model name.
        **kwargs: Extra model options (temperature, api_key, host, ...).

    Returns:
        Configured BaseChatModel.

    Raises:
        ProviderError: If the provider is unknown, unconfigured, or its
            LangChain integration is not installed.
    """
    provider = _normalize_provider(provider_name)
    if provider not in PROVIDER_DEFAULTS:
        log.error("provider_unknown", provider=provider)
        raise ProviderError(provider, f"Unknown provider: {provider}")

    kwargs = _resolve_provider_kwargs(provider, model, kwargs)

    from langchain.chat_models import init_chat_model

    try:
        chat_model: BaseChatModel = init_chat_model(
            model=model,
            model_provider="google_genai" if provider == "google" else provider,
            **kwargs,
        )
    except ImportError as e:
        package = _PACKAGES[provider]
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderError(provider, f"{package} not installed. Run: pip install {package}") from e

    log.info("chat_model_created", provider=provider, model=model)
    return chat_model
