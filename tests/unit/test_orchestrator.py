"""Tests for the story run controller and level orchestrator."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from diamondforge.diamond.shape import calculate_diamond_shape
from diamondforge.diamond.validation import find_dangling_references, find_unreachable_scenes
from diamondforge.models.story import (
    EndingQuality,
    GenerationMode,
    Genre,
    PlayerCustomization,
    SceneType,
    create_generation_state,
)
from diamondforge.pipeline.orchestrator import (
    WORLD_RULES_ATTEMPTS,
    DiamondOrchestrator,
    WorldBuildingError,
    level_progress,
)
from diamondforge.pipeline.presets import get_diamond_preset
from diamondforge.providers.base import ProviderRateLimitError
from tests.fixtures.scripted_llm import ScriptedCritic, ScriptedGenerator, world_rules_response

if TYPE_CHECKING:
    from diamondforge.models.story import GenerationState


EXPECTED_PROGRESS = [
    (5, "Building story world... (Draft mode)"),
    (10, "Planning story branches..."),
    (10, "Writing level 1..."),
    (30, "Writing level 2..."),
    (50, "Writing level 3..."),
    (70, "Writing endings..."),
    (95, "Validating story paths..."),
    (100, "Complete!"),
]


class TestFullRun:
    @pytest.mark.asyncio
    async def test_small_diamond_is_complete_and_connected(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        orchestrator = DiamondOrchestrator(generator, critic, seed=3)

        result = await orchestrator.run(state)

        shape = calculate_diamond_shape(state.diamond_config)
        assert result is state
        assert len(state.scenes) == sum(shape) == 11
        assert [len(ids) for ids in state.scenes_by_level] == shape
        assert state.scenes_generated == 11
        assert find_unreachable_scenes(state) == []
        assert find_dangling_references(state) == []
        assert orchestrator.last_report is not None
        assert orchestrator.last_report.is_clean

    @pytest.mark.asyncio
    async def test_endings_only_on_last_level(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic, seed=3).run(state)

        endings = [s for s in state.scenes.values() if s.is_ending]
        assert {s.level for s in endings} == {state.last_level}
        assert all(s.decisions == [] for s in endings)
        assert all(s.decisions for s in state.scenes.values() if not s.is_ending)
        assert state.ending_count() == 3

    @pytest.mark.asyncio
    async def test_scene_types_and_ending_rotation(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic, seed=3).run(state)

        assert state.scenes["scene_L0_0"].scene_type is SceneType.INTRO
        assert state.scenes["scene_L2_3"].scene_type is SceneType.BRANCH
        qualities = [state.scenes[sid].ending_quality for sid in state.scenes_by_level[-1]]
        assert qualities == [EndingQuality.BAD, EndingQuality.GOOD, EndingQuality.BEST]
        assert state.scenes["scene_L3_1"].ending_summary == "Ending number 1"

    @pytest.mark.asyncio
    async def test_word_total_tracks_scenes(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic).run(state)
        assert state.total_words == sum(s.word_count for s in state.scenes.values())

    @pytest.mark.asyncio
    async def test_draft_reviews_intro_and_endings_only(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic).run(state, GenerationMode.DRAFT)
        assert len(critic.seen) == 1 + 3

    @pytest.mark.asyncio
    async def test_polished_reviews_every_scene(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        progress: list[tuple[int, str]] = []
        orchestrator = DiamondOrchestrator(
            generator, critic, on_progress=lambda p, m: progress.append((p, m))
        )

        await orchestrator.run(state, GenerationMode.POLISHED)

        assert len(critic.seen) == 11
        assert progress[0] == (5, "Building story world... (Polished mode)")

    @pytest.mark.asyncio
    async def test_default_critic_uses_generator(
        self, state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        await DiamondOrchestrator(generator).run(state)
        assert len(generator.calls_for("CriticEvaluation")) == 4

    @pytest.mark.asyncio
    async def test_quick_preset_reports_unreachable_branch(
        self, quick_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.choices = 2
        orchestrator = DiamondOrchestrator(generator, critic, seed=1)

        await orchestrator.run(quick_state)

        assert orchestrator.last_report is not None
        assert "scene_L1_2 is not reachable from level 0" in orchestrator.last_report.warnings
        assert find_dangling_references(quick_state) == []

    @pytest.mark.asyncio
    async def test_provider_error_aborts_run(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("GeneratedScene", ProviderRateLimitError("openai", "slow down"))

        with pytest.raises(ProviderRateLimitError):
            await DiamondOrchestrator(generator, critic).run(state)


class TestWorldRules:
    @pytest.mark.asyncio
    async def test_existing_world_is_kept(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic).run(world_state)

        assert generator.calls_for("WorldRules") == []
        assert world_state.world_rules is not None
        assert world_state.world_rules.setting == "A fog-bound harbor town"

    @pytest.mark.asyncio
    async def test_existing_world_without_plan_ends_neutral(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic).run(world_state)

        last_level = world_state.scenes_by_level[-1]
        qualities = [world_state.scenes[sid].ending_quality for sid in last_level]
        assert qualities == [EndingQuality.NEUTRAL] * 3

    @pytest.mark.asyncio
    async def test_ending_plan_fitted_to_preset(
        self, player: PlayerCustomization, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        epic_state = create_generation_state(
            genre=Genre.HORROR,
            premise="The tide brings back what the town buried.",
            player=player,
            diamond_config=get_diamond_preset("epic"),
            preset="epic",
        )
        generator.queue("WorldRules", {"setting": "A drowned city"})

        world = await DiamondOrchestrator(generator, critic).generate_world_rules(epic_state)

        config = epic_state.diamond_config
        assert config.min_endings <= len(world.possible_endings) <= config.max_endings

    @pytest.mark.asyncio
    async def test_long_ending_plan_truncated(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("WorldRules", world_rules_response(endings=6))

        world = await DiamondOrchestrator(generator, critic).generate_world_rules(state)

        assert len(world.possible_endings) == state.diamond_config.max_endings

    @pytest.mark.asyncio
    async def test_retry_with_feedback(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("WorldRules", {"rules": ["no setting"]}, world_rules_response())
        orchestrator = DiamondOrchestrator(generator, critic)

        world = await orchestrator.generate_world_rules(state)

        calls = generator.calls_for("WorldRules")
        assert len(calls) == 2
        assert "not valid WorldRules JSON" in calls[1].user_prompt
        assert world.setting.startswith("A fog-bound harbor town")

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("WorldRules", *({"setting": ""} for _ in range(WORLD_RULES_ATTEMPTS)))

        with pytest.raises(WorldBuildingError) as exc_info:
            await DiamondOrchestrator(generator, critic).run(state)

        assert exc_info.value.attempts == WORLD_RULES_ATTEMPTS
        assert generator.calls_for("GeneratedScene") == []

    @pytest.mark.asyncio
    async def test_world_prompt_carries_inputs(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await DiamondOrchestrator(generator, critic).generate_world_rules(state)

        prompt = generator.calls_for("WorldRules")[0].user_prompt
        assert "mystery" in prompt
        assert state.premise in prompt
        assert "Ada" in prompt


class TestProgress:
    def test_level_progress(self) -> None:
        assert level_progress(0, 4) == 10
        assert level_progress(3, 4) == 70
        assert level_progress(5, 6) == 76

    @pytest.mark.asyncio
    async def test_sync_callback_sequence(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        progress: list[tuple[int, str]] = []
        orchestrator = DiamondOrchestrator(generator, critic, on_progress=lambda p, m: progress.append((p, m)))

        await orchestrator.run(state)

        assert progress == EXPECTED_PROGRESS

    @pytest.mark.asyncio
    async def test_async_callback_is_scheduled(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        progress: list[tuple[int, str]] = []

        async def report(percent: int, message: str) -> None:
            progress.append((percent, message))

        await DiamondOrchestrator(generator, critic, on_progress=report).run(state)
        for _ in range(3):
            await asyncio.sleep(0)

        assert progress == EXPECTED_PROGRESS

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_abort(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        def broken(percent: int, message: str) -> None:
            raise RuntimeError("display gone")

        await DiamondOrchestrator(generator, critic, on_progress=broken).run(state)

        assert len(state.scenes) == 11

    @pytest.mark.asyncio
    async def test_failing_async_callback_does_not_abort(
        self, state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        async def broken(percent: int, message: str) -> None:
            raise RuntimeError("socket closed")

        await DiamondOrchestrator(generator, critic, on_progress=broken).run(state)
        await asyncio.sleep(0)

        assert len(state.scenes) == 11
