"""Tests for logging configuration and run correlation."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from diamondforge.observability import (
    bind_run_context,
    build_runnable_config,
    clear_run_context,
    close_file_logging,
    configure_logging,
    generate_run_id,
    get_logger,
    get_logs_dir,
    get_run_id,
    set_run_id,
    traceable,
)
from diamondforge.observability.logging import LOG_FILE_NAME

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def reset_logging() -> Iterator[None]:
    yield
    clear_run_context()
    close_file_logging()
    configure_logging()


class TestConfigureLogging:
    def test_file_requires_project_path(self) -> None:
        with pytest.raises(ValueError, match="project_path"):
            configure_logging(log_to_file=True)

    @pytest.mark.usefixtures("reset_logging")
    def test_writes_jsonl_with_run_context(self, tmp_path: Path) -> None:
        configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
        bind_run_context(run_id="run-1")

        get_logger("diamondforge.test").info("story_started", genre="mystery")
        close_file_logging()

        assert get_logs_dir() == tmp_path / "logs"
        lines = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
        entries = [json.loads(line) for line in lines]
        entry = next(e for e in entries if e["event"] == "story_started")
        assert entry["genre"] == "mystery"
        assert entry["run_id"] == "run-1"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "diamondforge.test"


class TestRunCorrelation:
    def test_run_ids_are_unique(self) -> None:
        assert generate_run_id() != generate_run_id()

    def test_config_carries_run_id(self) -> None:
        set_run_id("abc")
        config = build_runnable_config(run_name="generate_WorldRules", tags=["diamondforge"])
        assert get_run_id() == "abc"
        assert config["metadata"]["diamondforge_run_id"] == "abc"
        assert config["run_name"] == "generate_WorldRules"
        assert config["tags"] == ["diamondforge"]
        assert "callbacks" not in config

    def test_config_keeps_metadata(self) -> None:
        config = build_runnable_config(metadata={"scene_id": "scene_L0_0"})
        assert config["metadata"]["scene_id"] == "scene_L0_0"


@pytest.mark.asyncio
async def test_traceable_preserves_behavior() -> None:
    @traceable("double")
    async def double(value: int) -> int:
        return value * 2

    assert await double(21) == 42
