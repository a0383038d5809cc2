"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path

import pytest

from diamondforge.models.story import (
    DiamondConfig,
    GenerationState,
    Genre,
    PlayerCustomization,
    WorldRules,
    create_generation_state,
)
from diamondforge.pipeline.presets import get_diamond_preset
from tests.fixtures.scripted_llm import ScriptedCritic, ScriptedGenerator


@pytest.fixture(autouse=True, scope="session")
def disable_langsmith_tracing() -> None:
    """Disable LangSmith tracing during test runs.

    This prevents test runs from cluttering the LangSmith dashboard.
    Set LANGSMITH_TEST_TRACING=true to override for debugging.
    """
    if os.environ.get("LANGSMITH_TEST_TRACING", "").lower() != "true":
        os.environ["LANGSMITH_TRACING"] = "false"


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def player() -> PlayerCustomization:
    return PlayerCustomization(name="Ada", personality="curious")


@pytest.fixture
def small_config() -> DiamondConfig:
    """The 4-level, 4-wide diamond used throughout the pipeline tests."""
    return DiamondConfig(max_levels=4, max_width=4, min_endings=2, max_endings=3)


@pytest.fixture
def state(player: PlayerCustomization, small_config: DiamondConfig) -> GenerationState:
    """Fresh state with no world rules yet."""
    return create_generation_state(
        genre=Genre.MYSTERY,
        premise="A lighthouse keeper vanishes on the night of the storm.",
        player=player,
        diamond_config=small_config,
        preset="custom",
    )


@pytest.fixture
def world_state(state: GenerationState) -> GenerationState:
    """State with world rules already in place."""
    state.world_rules = WorldRules(setting="A fog-bound harbor town")
    return state


@pytest.fixture
def quick_state(player: PlayerCustomization) -> GenerationState:
    return create_generation_state(
        genre=Genre.FANTASY,
        premise="A cartographer finds a map of a city that does not exist.",
        player=player,
        diamond_config=get_diamond_preset("quick"),
        preset="quick",
    )


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def critic() -> ScriptedCritic:
    return ScriptedCritic()
