"""Tests for the typer CLI."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from ruamel.yaml import YAML
from typer.testing import CliRunner

from diamondforge import __version__
from diamondforge.cli import app
from diamondforge.providers import ProviderError
from tests.fixtures.scripted_llm import ScriptedGenerator

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()


def _generate_args(tmp_path: Path, *extra: str) -> list[str]:
    return [
        "generate",
        "--genre",
        "mystery",
        "--premise",
        "A lighthouse keeper vanishes on the night of the storm.",
        "--player-name",
        "Ada",
        "--project",
        str(tmp_path),
        "--seed",
        "3",
        *extra,
    ]


@pytest.fixture
def story_file(tmp_path: Path) -> Path:
    with patch("diamondforge.cli._build_generator", return_value=ScriptedGenerator()):
        result = runner.invoke(app, _generate_args(tmp_path))
    assert result.exit_code == 0, result.output
    return tmp_path / "output" / "story.json"


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"DiamondForge v{__version__}" in result.output


def test_no_args_shows_help() -> None:
    result = runner.invoke(app, [])
    assert "generate" in result.output
    assert "visualize" in result.output


class TestGenerate:
    def test_writes_story(self, story_file: Path) -> None:
        data = json.loads(story_file.read_text(encoding="utf-8"))
        assert data["genre"] == "mystery"
        assert data["preset"] == "quick"
        assert data["total_scenes"] == 11
        assert data["start_scene_id"] == "scene_L0_0"

    def test_reports_output_path(self, tmp_path: Path) -> None:
        with patch("diamondforge.cli._build_generator", return_value=ScriptedGenerator()):
            result = runner.invoke(app, _generate_args(tmp_path, "--output", str(tmp_path / "elsewhere")))
        assert result.exit_code == 0, result.output
        assert "Story written to" in result.output
        assert (tmp_path / "elsewhere" / "story.json").exists()

    def test_invalid_genre(self, tmp_path: Path) -> None:
        args = _generate_args(tmp_path)
        args[args.index("mystery")] = "western"
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "western" in result.output

    def test_unknown_preset(self, tmp_path: Path) -> None:
        result = runner.invoke(app, _generate_args(tmp_path, "--preset", "saga"))
        assert result.exit_code == 1
        assert "Unknown story preset" in result.output

    def test_provider_error(self, tmp_path: Path) -> None:
        with patch("diamondforge.cli._build_generator", side_effect=ProviderError("openai", "key missing")):
            result = runner.invoke(app, _generate_args(tmp_path))
        assert result.exit_code == 1
        assert "Provider error" in result.output

    def test_log_flag_writes_jsonl(self, tmp_path: Path) -> None:
        with patch("diamondforge.cli._build_generator", return_value=ScriptedGenerator()):
            result = runner.invoke(app, ["--log", *_generate_args(tmp_path)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "logs" / "generation.jsonl").exists()


class TestShape:
    def test_default_preset(self) -> None:
        result = runner.invoke(app, ["shape"])
        assert result.exit_code == 0
        assert "Preset: quick" in result.output
        assert "Total scenes: 11" in result.output
        assert "expanding" in result.output
        assert "endings" in result.output
        assert "contracting" not in result.output

    def test_standard_preset_contracts(self) -> None:
        result = runner.invoke(app, ["shape", "--preset", "standard"])
        assert result.exit_code == 0
        assert "Preset: standard" in result.output
        assert "contracting" in result.output
        assert "Total scenes: 17" in result.output

    def test_custom_overrides(self) -> None:
        result = runner.invoke(app, ["shape", "--levels", "3", "--width", "5"])
        assert result.exit_code == 0
        assert "Custom diamond" in result.output
        assert "Total scenes: 9" in result.output

    def test_invalid_custom(self) -> None:
        result = runner.invoke(app, ["shape", "--levels", "9"])
        assert result.exit_code == 1
        assert "Invalid diamond" in result.output


class TestVisualize:
    def test_dot_to_stdout(self, story_file: Path) -> None:
        result = runner.invoke(app, ["visualize", str(story_file)])
        assert result.exit_code == 0
        assert "digraph story {" in result.output

    def test_mermaid_to_file(self, story_file: Path, tmp_path: Path) -> None:
        target = tmp_path / "graphs" / "story.mmd"
        result = runner.invoke(app, ["visualize", str(story_file), "-f", "mermaid", "-o", str(target)])
        assert result.exit_code == 0
        assert "Wrote mermaid graph (11 scenes)" in result.output
        assert target.read_text(encoding="utf-8").startswith("graph TD")

    def test_unknown_format(self, story_file: Path) -> None:
        result = runner.invoke(app, ["visualize", str(story_file), "-f", "svg"])
        assert result.exit_code == 1
        assert "Unknown format" in result.output

    def test_missing_story(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["visualize", str(tmp_path / "nope.json")])
        assert result.exit_code == 1


class TestInit:
    def test_creates_project(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["init", "harbor", "--path", str(tmp_path), "--provider", "ollama/qwen3:8b"])

        assert result.exit_code == 0
        assert "Created project" in result.output
        data = YAML(typ="safe").load((tmp_path / "harbor" / "project.yaml").read_text(encoding="utf-8"))
        assert data["name"] == "harbor"
        assert data["provider"] == "ollama/qwen3:8b"
        assert data["generation"]["preset"] == "quick"
        assert data["generation"]["mode"] == "draft"

    def test_existing_project(self, tmp_path: Path) -> None:
        runner.invoke(app, ["init", "harbor", "--path", str(tmp_path)])
        result = runner.invoke(app, ["init", "harbor", "--path", str(tmp_path)])
        assert result.exit_code == 1
        assert "Project already exists" in result.output
