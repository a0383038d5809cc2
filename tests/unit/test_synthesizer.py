"""Tests for the quality-gated scene synthesizer."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from diamondforge.models.generation import OutputValidationError
from diamondforge.models.story import EndingQuality, GenerationMode, SceneType
from diamondforge.pipeline.synthesizer import (
    MAX_SCENE_ATTEMPTS,
    SceneRequest,
    SceneSynthesisError,
    SceneSynthesizer,
    missing_decisions_constraints,
)
from diamondforge.providers.base import ProviderConnectionError
from tests.fixtures.scripted_llm import (
    ScriptedCritic,
    ScriptedGenerator,
    accept,
    regenerate,
    rewrite,
    scene_response,
)

if TYPE_CHECKING:
    from diamondforge.models.story import GenerationState


def _intro() -> SceneRequest:
    return SceneRequest(scene_id="scene_L0_0", scene_type=SceneType.INTRO, level=0)


def _branch() -> SceneRequest:
    return SceneRequest(
        scene_id="scene_L1_0", scene_type=SceneType.BRANCH, level=1, incoming_ids=["scene_L0_0"]
    )


def _ending(summary: str | None = "The lamp is lit again") -> SceneRequest:
    return SceneRequest(
        scene_id="scene_L3_0",
        scene_type=SceneType.ENDING,
        level=3,
        incoming_ids=["scene_L2_0"],
        ending_quality=EndingQuality.GOOD,
        ending_summary=summary,
    )


class TestReviewPolicy:
    def test_draft_reviews_intro_and_endings(
        self, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        synth = SceneSynthesizer(generator, critic, mode=GenerationMode.DRAFT)
        assert synth.needs_review(SceneType.INTRO)
        assert synth.needs_review(SceneType.ENDING)
        assert not synth.needs_review(SceneType.BRANCH)
        assert synth.quality_threshold == 6.0

    def test_polished_reviews_everything(self, generator: ScriptedGenerator, critic: ScriptedCritic) -> None:
        synth = SceneSynthesizer(generator, critic, mode=GenerationMode.POLISHED)
        assert all(synth.needs_review(t) for t in SceneType)
        assert synth.quality_threshold == 7.0


class TestMissingDecisions:
    @pytest.mark.asyncio
    async def test_empty_twice_then_success(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("GeneratedScene", scene_response(0), scene_response(0), scene_response(3))
        synth = SceneSynthesizer(generator, critic)

        scene = await synth.synthesize(world_state, _branch())

        calls = generator.calls_for("GeneratedScene")
        assert len(calls) == 3
        assert "decisions array was empty" not in calls[0].user_prompt
        assert "decisions array was empty" in calls[1].user_prompt
        assert "decisions array was empty" in calls[2].user_prompt
        assert "Include exactly 3 decisions" in calls[2].user_prompt
        assert [d.text for d in scene.decisions] == ["Choice 1", "Choice 2", "Choice 3"]
        assert [d.id for d in scene.decisions] == [f"scene_L1_0_decision_{i}" for i in range(3)]
        assert [d.choice_order for d in scene.decisions] == [1, 2, 3]
        assert all(d.leads_to == "" for d in scene.decisions)

    @pytest.mark.asyncio
    async def test_last_attempt_kept_without_decisions(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("GeneratedScene", *(scene_response(0) for _ in range(MAX_SCENE_ATTEMPTS)))

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _branch())

        assert scene.decisions == []
        assert len(generator.calls) == MAX_SCENE_ATTEMPTS

    def test_constraint_text(self) -> None:
        assert missing_decisions_constraints(2) == [
            'CRITICAL: You MUST include the "decisions" array with player choices.',
            "The decisions array was empty in your previous response.",
            "Include exactly 2 decisions in your JSON output.",
        ]


class TestCriticLoop:
    @pytest.mark.asyncio
    async def test_regenerate_twice_then_accept_uses_edited_content(
        self, world_state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        critic = ScriptedCritic([regenerate(), regenerate("Choices are identical"), accept("Edited final scene")])

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _intro())

        assert scene.content == "Edited final scene"
        calls = generator.calls_for("GeneratedScene")
        assert len(calls) == 3
        assert "PREVIOUS ATTEMPT FAILED: Flat prose" in calls[1].user_prompt
        assert "PREVIOUS ATTEMPT FAILED: Choices are identical" in calls[2].user_prompt
        assert "Focus on vivid sensory details" in calls[2].user_prompt

    @pytest.mark.asyncio
    async def test_accept_without_edit_keeps_narrative(
        self, world_state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        generator.queue("GeneratedScene", scene_response(3, tag="original."))

        scene = await SceneSynthesizer(generator, ScriptedCritic()).synthesize(world_state, _intro())

        assert scene.content.endswith("original.")

    @pytest.mark.asyncio
    async def test_rewrite_instructions_carried_forward(
        self, world_state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        critic = ScriptedCritic([rewrite("Cut the second paragraph")])

        await SceneSynthesizer(generator, critic).synthesize(world_state, _intro())

        calls = generator.calls_for("GeneratedScene")
        assert len(calls) == 2
        assert "## EDITOR FEEDBACK" in calls[1].user_prompt
        assert "- Cut the second paragraph" in calls[1].user_prompt

    @pytest.mark.asyncio
    async def test_exhaustion_returns_latest_draft(
        self, world_state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        generator.queue(
            "GeneratedScene",
            scene_response(3, tag="first."),
            scene_response(3, tag="second."),
            scene_response(3, tag="third."),
        )
        critic = ScriptedCritic([rewrite(), rewrite(), rewrite()])

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _intro())

        assert scene.content.endswith("third.")
        assert len(critic.seen) == MAX_SCENE_ATTEMPTS

    @pytest.mark.asyncio
    async def test_branch_skips_critic_in_draft(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        await SceneSynthesizer(generator, critic).synthesize(world_state, _branch())
        assert critic.seen == []

    @pytest.mark.asyncio
    async def test_unreadable_critic_accepts_draft(
        self, world_state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        generator.queue("GeneratedScene", scene_response(3, tag="kept."))
        critic = ScriptedCritic([OutputValidationError("CriticEvaluation", ["no decision"])])

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _intro())

        assert scene.content.endswith("kept.")
        assert len(generator.calls) == 1


class TestQualityThreshold:
    @pytest.mark.asyncio
    async def test_polished_accept_below_threshold_becomes_rewrite(
        self, world_state: GenerationState, generator: ScriptedGenerator
    ) -> None:
        critic = ScriptedCritic([accept("too weak", score=6.5), accept("strong enough", score=8)])
        synth = SceneSynthesizer(generator, critic, mode=GenerationMode.POLISHED)

        scene = await synth.synthesize(world_state, _branch())

        assert scene.content == "strong enough"
        calls = generator.calls_for("GeneratedScene")
        assert "Raise immersion, pacing, voice to at least 7/10." in calls[1].user_prompt
        assert "POLISHED MODE ACTIVE" in calls[0].system_prompt

    @pytest.mark.asyncio
    async def test_draft_threshold_is_lower(self, world_state: GenerationState, generator: ScriptedGenerator) -> None:
        critic = ScriptedCritic([accept("fine for a draft", score=6.5)])

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _intro())

        assert scene.content == "fine for a draft"
        assert "POLISHED MODE ACTIVE" not in generator.calls[0].system_prompt


class TestFailures:
    @pytest.mark.asyncio
    async def test_no_parseable_draft_raises(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("GeneratedScene", *({"decisions": []} for _ in range(MAX_SCENE_ATTEMPTS)))

        with pytest.raises(SceneSynthesisError) as exc_info:
            await SceneSynthesizer(generator, critic).synthesize(world_state, _branch())

        assert exc_info.value.scene_id == "scene_L1_0"
        assert exc_info.value.attempts == MAX_SCENE_ATTEMPTS
        calls = generator.calls_for("GeneratedScene")
        assert "not valid GeneratedScene JSON" in calls[1].user_prompt

    @pytest.mark.asyncio
    async def test_unparseable_then_valid(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue(
            "GeneratedScene",
            OutputValidationError("GeneratedScene", ["response could not be parsed as JSON"]),
            scene_response(3),
        )

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _branch())

        assert len(scene.decisions) == 3
        assert "response could not be parsed as JSON" in generator.calls[1].user_prompt

    @pytest.mark.asyncio
    async def test_provider_error_propagates(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        generator.queue("GeneratedScene", ProviderConnectionError("openai", "connection refused"))

        with pytest.raises(ProviderConnectionError):
            await SceneSynthesizer(generator, critic).synthesize(world_state, _branch())


class TestEndings:
    @pytest.mark.asyncio
    async def test_ending_has_no_decisions(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _ending())

        assert scene.is_ending
        assert scene.decisions == []
        assert scene.ending_quality is EndingQuality.GOOD
        assert scene.ending_summary == "The lamp is lit again"
        assert scene.previous_scene_ids == ["scene_L2_0"]
        prompt = generator.calls[0].user_prompt
        assert "Write a good ending" in prompt
        assert "Empty array []" in prompt
        assert len(critic.seen) == 1

    @pytest.mark.asyncio
    async def test_generated_summary_used_when_none_planned(
        self, world_state: GenerationState, generator: ScriptedGenerator, critic: ScriptedCritic
    ) -> None:
        response = scene_response(0)
        response["ending_summary"] = "Everyone sails home"
        generator.queue("GeneratedScene", response)

        scene = await SceneSynthesizer(generator, critic).synthesize(world_state, _ending(summary=None))

        assert scene.ending_summary == "Everyone sails home"
