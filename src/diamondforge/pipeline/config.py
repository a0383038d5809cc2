"""Project configuration loading.

A project directory may hold a ``project.yaml``::

    name: harbor-mysteries
    provider: openai/gpt-5-mini
    generation:
      preset: standard
      mode: polished
      max_concurrency: 2
      seed: 42

Values are resolved as: CLI flag > environment (``DF_PROVIDER``,
``DF_MODE``) > project.yaml > defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

from diamondforge.models.story import GenerationMode
from diamondforge.pipeline.presets import DEFAULT_PRESET, VALID_PRESETS

DEFAULT_PROVIDER = "openai/gpt-5-mini"
DEFAULT_MAX_CONCURRENCY = 2
CONFIG_FILE_NAME = "project.yaml"

PROVIDER_ENV = "DF_PROVIDER"
MODE_ENV = "DF_MODE"


@dataclass
class GenerationSettings:
    """The ``generation:`` section of project.yaml."""

    preset: str = DEFAULT_PRESET
    mode: GenerationMode = GenerationMode.DRAFT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    seed: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationSettings:
        """Create settings from a dictionary.

        Raises:
            ValueError: If the preset, mode or concurrency is invalid.
        """
        preset = str(data.get("preset", DEFAULT_PRESET))
        if preset not in VALID_PRESETS:
            raise ValueError(f"generation.preset must be one of {sorted(VALID_PRESETS)}, got {preset!r}")

        mode = GenerationMode(str(data.get("mode", GenerationMode.DRAFT)).lower())

        max_concurrency = int(data.get("max_concurrency", DEFAULT_MAX_CONCURRENCY))
        if max_concurrency < 1:
            raise ValueError(f"generation.max_concurrency must be >= 1, got {max_concurrency}")

        seed = data.get("seed")
        return cls(
            preset=preset,
            mode=mode,
            max_concurrency=max_concurrency,
            seed=int(seed) if seed is not None else None,
        )


@dataclass
class ProjectConfig:
    """Configuration for a DiamondForge project."""

    name: str
    version: int = 1
    provider: str = DEFAULT_PROVIDER
    generation: GenerationSettings = field(default_factory=GenerationSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        return cls(
            name=str(data.get("name", "unnamed")),
            version=int(data.get("version", 1)),
            provider=str(data.get("provider") or DEFAULT_PROVIDER),
            generation=GenerationSettings.from_dict(dict(data.get("generation") or {})),
        )

    def resolve_provider(self, override: str | None = None) -> str:
        """Provider string after applying the CLI override and ``DF_PROVIDER``."""
        return override or os.getenv(PROVIDER_ENV) or self.provider

    def resolve_mode(self, override: GenerationMode | str | None = None) -> GenerationMode:
        """Generation mode after applying the CLI override and ``DF_MODE``.

        Raises:
            ValueError: If the override or environment names an unknown mode.
        """
        value = override or os.getenv(MODE_ENV) or self.generation.mode
        return GenerationMode(str(value).lower())


class ProjectConfigError(Exception):
    """Raised when project configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load project config at {path}: {reason}")


def load_project_config(project_path: Path) -> ProjectConfig:
    """Load project configuration from ``project.yaml``.

    Args:
        project_path: Path to the project root directory.

    Returns:
        ProjectConfig instance.

    Raises:
        ProjectConfigError: If the file is missing, empty or invalid.
    """
    config_path = project_path / CONFIG_FILE_NAME
    if not config_path.exists():
        raise ProjectConfigError(config_path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
    except Exception as e:
        raise ProjectConfigError(config_path, str(e)) from e

    if data is None:
        raise ProjectConfigError(config_path, "Empty file")
    if not isinstance(data, dict):
        raise ProjectConfigError(config_path, "Top level must be a mapping")

    try:
        return ProjectConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ProjectConfigError(config_path, str(e)) from e


def load_or_default_config(project_path: Path | None) -> ProjectConfig:
    """Load ``project.yaml`` when present, else fall back to defaults.

    Raises:
        ProjectConfigError: If the file exists but is invalid.
    """
    if project_path is None or not (project_path / CONFIG_FILE_NAME).exists():
        name = project_path.name if project_path is not None else "unnamed"
        return create_default_config(name)
    return load_project_config(project_path)


def create_default_config(name: str, provider: str | None = None) -> ProjectConfig:
    """Create a default project configuration."""
    return ProjectConfig(name=name, provider=provider or DEFAULT_PROVIDER)
