"""Prompt compiler: template lookup plus ``{{ variable }}`` substitution."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from diamondforge.observability.logging import get_logger
from diamondforge.prompts.loader import PromptLoader, TemplateNotFoundError, TemplateParseError

if TYPE_CHECKING:
    from pathlib import Path

log = get_logger(__name__)

_VAR_PATTERN = re.compile(r"\{\{\s*(\w+(?:\.\w+)*)\s*\}\}")


@dataclass
class CompiledPrompt:
    """A system/user prompt pair ready for a collaborator call."""

    system: str
    user: str
    template_name: str


class PromptCompileError(Exception):
    """Raised when prompt compilation fails."""

    def __init__(self, template_name: str, message: str) -> None:
        self.template_name = template_name
        super().__init__(f"Failed to compile template '{template_name}': {message}")


def _resolve(path: str, context: dict[str, Any]) -> str:
    value: Any = context
    for part in path.split("."):
        if isinstance(value, dict):
            if part not in value:
                raise KeyError(path)
            value = value[part]
        elif hasattr(value, part):
            value = getattr(value, part)
        else:
            raise KeyError(path)

    if isinstance(value, (list, dict)):
        return json.dumps(value, indent=2)
    return str(value)


def render(text: str, context: dict[str, Any]) -> str:
    """Replace ``{{ name }}`` / ``{{ a.b }}`` placeholders from ``context``.

    Unknown placeholders are left in place.
    """

    def replace(match: re.Match[str]) -> str:
        try:
            return _resolve(match.group(1), context)
        except KeyError:
            log.debug("prompt_variable_unresolved", variable=match.group(1))
            return match.group(0)

    return _VAR_PATTERN.sub(replace, text)


class PromptCompiler:
    """Compile prompts from YAML templates.

    Args:
        templates_path: Template directory; defaults to the packaged templates.
    """

    def __init__(self, templates_path: Path | None = None) -> None:
        self._loader = PromptLoader(templates_path)

    @property
    def loader(self) -> PromptLoader:
        return self._loader

    def compile(self, template_name: str, context: dict[str, Any] | None = None) -> CompiledPrompt:
        """Render a template's system and user prompts.

        Raises:
            PromptCompileError: If the template cannot be loaded.
        """
        context = context or {}
        try:
            template = self._loader.load(template_name)
        except (TemplateNotFoundError, TemplateParseError) as e:
            raise PromptCompileError(template_name, str(e)) from e

        return CompiledPrompt(
            system=render(template.system, context),
            user=render(template.user, context),
            template_name=template_name,
        )

    def section(self, template_name: str, key: str, context: dict[str, Any] | None = None) -> str:
        """Render one named section of a template.

        Raises:
            PromptCompileError: If the template or the section does not exist.
        """
        try:
            template = self._loader.load(template_name)
        except (TemplateNotFoundError, TemplateParseError) as e:
            raise PromptCompileError(template_name, str(e)) from e

        if key not in template.sections:
            raise PromptCompileError(template_name, f"no section named '{key}'")
        return render(template.sections[key], context or {})

    def list_templates(self) -> list[str]:
        return self._loader.list_templates()
