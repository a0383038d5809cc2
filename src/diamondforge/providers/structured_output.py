"""Structured output wiring for LangChain chat models.

Every provider is driven through ``json_schema`` mode with ``include_raw``
so parse failures come back as data instead of exceptions. OpenAI strict
mode rejects schemas with optional properties, so for OpenAI the schema is
rewritten to list every property as required.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from diamondforge.observability.logging import get_logger

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.runnables import Runnable
    from pydantic import BaseModel

log = get_logger(__name__)


def _make_all_required(schema: dict[str, Any], schema_name: str = "root") -> dict[str, Any]:
    """Mark every property of every object in ``schema`` as required, in place."""
    if "properties" in schema:
        schema["required"] = sorted(schema["properties"])
        for prop_name, prop_schema in schema["properties"].items():
            if isinstance(prop_schema, dict):
                _make_all_required(prop_schema, f"{schema_name}.{prop_name}")

    if isinstance(schema.get("items"), dict):
        _make_all_required(schema["items"], f"{schema_name}[]")

    for def_name, def_schema in schema.get("$defs", {}).items():
        if isinstance(def_schema, dict):
            _make_all_required(def_schema, def_name)

    return schema


def build_json_schema(schema: type[BaseModel], provider_name: str | None = None) -> dict[str, Any]:
    """JSON schema for ``schema``, adjusted for the provider's strictness."""
    json_schema = schema.model_json_schema()
    if provider_name and provider_name.lower().startswith("openai"):
        log.debug("applying_openai_strict_schema", schema=schema.__name__)
        # model_json_schema() may hand back a cached dict
        json_schema = _make_all_required(copy.deepcopy(json_schema), schema.__name__)
    return json_schema


def with_structured_output(
    model: BaseChatModel,
    schema: type[BaseModel],
    provider_name: str | None = None,
) -> Runnable[Any, Any]:
    """Wrap a chat model so ``ainvoke`` returns ``{"raw", "parsed", "parsing_error"}``.

    Args:
        model: Base chat model.
        schema: Pydantic model describing the expected output.
        provider_name: Provider name; ``openai`` enables strict mode.

    Returns:
        Runnable producing the include_raw dict.
    """
    is_openai = bool(provider_name and provider_name.lower().startswith("openai"))
    return model.with_structured_output(
        build_json_schema(schema, provider_name),
        method="json_schema",
        include_raw=True,
        strict=True if is_openai else None,
    )


def strip_null_values(data: Any) -> Any:
    """Drop ``None`` values from dicts at any depth.

    Providers send explicit ``null`` for optional fields; treating those as
    absent lets the parsers apply their defaults.
    """
    if isinstance(data, dict):
        return {k: strip_null_values(v) for k, v in data.items() if v is not None}
    if isinstance(data, list):
        return [strip_null_values(item) for item in data]
    return data


def unwrap_structured_result(raw_result: Any) -> Any:
    """Return the ``parsed`` value of an include_raw result.

    Results without a ``parsed`` key (mocks, providers returning the value
    directly) are passed through unchanged.
    """
    if isinstance(raw_result, dict) and "parsed" in raw_result:
        parsed = raw_result["parsed"]
        if isinstance(parsed, dict):
            return strip_null_values(parsed)
        return parsed
    return raw_result
