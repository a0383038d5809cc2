"""Template loading for the prompt compiler."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

TEMPLATES_PATH = Path(__file__).parent / "templates"


@dataclass
class PromptTemplate:
    """A loaded prompt template.

    ``sections`` holds named fragments (style guide, per-scene-type task
    text, mode addenda) that callers splice into ``system`` or ``user``.
    """

    name: str
    description: str
    system: str
    user: str
    sections: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str) -> PromptTemplate:
        sections = data.get("sections") or {}
        return cls(
            name=data.get("name", name),
            description=data.get("description", ""),
            system=data.get("system", ""),
            user=data.get("user", ""),
            sections={str(k): str(v) for k, v in dict(sections).items()},
        )


class TemplateNotFoundError(Exception):
    """Raised when a template file cannot be found."""

    def __init__(self, template_name: str, path: Path) -> None:
        self.template_name = template_name
        self.path = path
        super().__init__(f"Template not found: {template_name} at {path}")


class TemplateParseError(Exception):
    """Raised when a template file cannot be parsed."""

    def __init__(self, template_name: str, reason: str) -> None:
        self.template_name = template_name
        self.reason = reason
        super().__init__(f"Failed to parse template '{template_name}': {reason}")


class PromptLoader:
    """Load YAML prompt templates from a directory, caching each one.

    Args:
        templates_path: Directory of ``*.yaml`` templates. Defaults to the
            templates shipped with the package.
    """

    def __init__(self, templates_path: Path | None = None) -> None:
        self.templates_path = templates_path or TEMPLATES_PATH
        self._yaml = YAML(typ="safe")
        self._cache: dict[str, PromptTemplate] = {}

    def _template_path(self, template_name: str) -> Path:
        return self.templates_path / f"{template_name}.yaml"

    def load(self, template_name: str) -> PromptTemplate:
        """Load a template by name (without the .yaml extension).

        Raises:
            TemplateNotFoundError: If the template file doesn't exist.
            TemplateParseError: If the file is empty or not valid YAML.
        """
        if template_name in self._cache:
            return self._cache[template_name]

        path = self._template_path(template_name)
        if not path.exists():
            raise TemplateNotFoundError(template_name, path)

        try:
            with path.open("r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except Exception as e:
            raise TemplateParseError(template_name, str(e)) from e

        if not isinstance(data, dict):
            raise TemplateParseError(template_name, "Empty file or not a mapping")

        template = PromptTemplate.from_dict(data, template_name)
        self._cache[template_name] = template
        return template

    def exists(self, template_name: str) -> bool:
        return self._template_path(template_name).exists()

    def list_templates(self) -> list[str]:
        """Names of available templates, sorted."""
        if not self.templates_path.exists():
            return []
        return sorted(p.stem for p in self.templates_path.glob("*.yaml") if p.is_file())

    def clear_cache(self) -> None:
        self._cache.clear()
