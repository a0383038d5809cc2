"""Quality-gated scene generation.

Each scene goes through GENERATE -> EVALUATE -> {ACCEPT, REWRITE,
REGENERATE} within a fixed attempt budget. Feedback from a failed attempt
(missing choices, unreadable output, critic instructions) is carried into
the next prompt as constraints. When the budget runs out the latest draft is
used as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from diamondforge.agents.prompts import SceneContext, build_scene_prompt
from diamondforge.models.generation import (
    GeneratedScene,
    OutputValidationError,
    parse_generated_scene,
)
from diamondforge.models.story import Decision, GenerationMode, Scene, SceneType
from diamondforge.observability.logging import get_logger
from diamondforge.observability.tracing import traceable

if TYPE_CHECKING:
    from diamondforge.agents.critic import SceneCritic
    from diamondforge.models.generation import CriticEvaluation
    from diamondforge.models.story import EndingQuality, GenerationState
    from diamondforge.prompts.compiler import PromptCompiler
    from diamondforge.providers.base import StructuredGenerator

log = get_logger(__name__)

MAX_SCENE_ATTEMPTS = 3

# Minimum immersion/pacing/voice score for a critic ACCEPT to stand
QUALITY_THRESHOLDS: dict[GenerationMode, float] = {
    GenerationMode.DRAFT: 6.0,
    GenerationMode.POLISHED: 7.0,
}

REGENERATE_GUIDANCE = (
    "Focus on vivid sensory details and concrete action.",
    "Make choices feel genuinely different and consequential.",
)


def missing_decisions_constraints(decision_count: int) -> list[str]:
    """Corrective constraints after a non-ending draft came back without choices."""
    return [
        'CRITICAL: You MUST include the "decisions" array with player choices.',
        "The decisions array was empty in your previous response.",
        f"Include exactly {decision_count} decisions in your JSON output.",
    ]


class SceneSynthesisError(Exception):
    """No usable draft was produced for a scene within its attempt budget."""

    def __init__(self, scene_id: str, attempts: int, reason: str) -> None:
        self.scene_id = scene_id
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Scene {scene_id} failed after {attempts} attempts: {reason}")


@dataclass
class SceneRequest:
    """What the level orchestrator asks for: one scene at a fixed position.

    Attributes:
        scene_id: Id the scene will carry.
        scene_type: intro, branch or ending.
        level: Level of the scene.
        incoming_ids: Previous-level scenes that lead here.
        ending_quality: Planned quality, ending scenes only.
        ending_summary: Planned outcome, ending scenes only.
    """

    scene_id: str
    scene_type: SceneType
    level: int
    incoming_ids: list[str] = field(default_factory=list)
    ending_quality: EndingQuality | None = None
    ending_summary: str | None = None

    @property
    def is_ending(self) -> bool:
        return self.scene_type == SceneType.ENDING


@dataclass
class _Draft:
    narrative: str
    decisions: list[Decision]
    ending_summary: str | None


class SceneSynthesizer:
    """Generates one scene at a time with critic review and retries.

    Args:
        generator: Collaborator producing scene drafts.
        critic: Collaborator judging drafts.
        mode: ``draft`` reviews only intro and ending scenes; ``polished``
            reviews every scene and raises the acceptance threshold.
        compiler: Prompt compiler; defaults to the packaged templates.
        max_attempts: Attempt budget per scene.
    """

    def __init__(
        self,
        generator: StructuredGenerator,
        critic: SceneCritic,
        *,
        mode: GenerationMode = GenerationMode.DRAFT,
        compiler: PromptCompiler | None = None,
        max_attempts: int = MAX_SCENE_ATTEMPTS,
    ) -> None:
        self._generator = generator
        self._critic = critic
        self._mode = mode
        self._compiler = compiler
        self._max_attempts = max_attempts

    @property
    def mode(self) -> GenerationMode:
        return self._mode

    @property
    def quality_threshold(self) -> float:
        return QUALITY_THRESHOLDS[self._mode]

    def needs_review(self, scene_type: SceneType) -> bool:
        """Whether drafts of ``scene_type`` go to the critic in this mode."""
        if self._mode == GenerationMode.POLISHED:
            return True
        return scene_type in (SceneType.INTRO, SceneType.ENDING)

    @traceable("synthesize_scene")
    async def synthesize(self, state: GenerationState, request: SceneRequest) -> Scene:
        """Generate, review and return one scene.

        The returned scene's decisions have no ``leads_to`` yet; the decision
        connector fills them in once the next level exists.

        Raises:
            SceneSynthesisError: If no attempt produced a parseable draft.
            ProviderError: If a collaborator call fails.
        """
        decision_count = 0 if request.is_ending else state.diamond_config.decisions_per_scene
        previous_contents = [
            state.scenes[sid].content for sid in request.incoming_ids if sid in state.scenes
        ]
        constraints: list[str] = []
        latest: _Draft | None = None
        last_problem = "no attempts made"

        for attempt in range(1, self._max_attempts + 1):
            is_last = attempt == self._max_attempts
            prompt = build_scene_prompt(
                state,
                scene_id=request.scene_id,
                scene_type=request.scene_type,
                level=request.level,
                previous_contents=previous_contents,
                decision_count=decision_count,
                ending_quality=request.ending_quality,
                ending_summary=request.ending_summary,
                constraints=constraints,
                mode=self._mode,
                compiler=self._compiler,
            )

            try:
                raw = await self._generator.generate(prompt.system, prompt.user, GeneratedScene)
                generated = parse_generated_scene(raw)
            except OutputValidationError as e:
                last_problem = str(e)
                log.warning(
                    "scene_output_invalid",
                    scene_id=request.scene_id,
                    attempt=attempt,
                    errors=e.errors,
                )
                constraints = [e.to_feedback()]
                continue

            latest = self._to_draft(request, generated)

            if not request.is_ending and not latest.decisions and not is_last:
                log.warning("scene_missing_decisions", scene_id=request.scene_id, attempt=attempt)
                constraints = missing_decisions_constraints(decision_count)
                continue

            if not self.needs_review(request.scene_type):
                return self._finish(request, latest, latest.narrative, attempt)

            try:
                evaluation = await self._critic.evaluate(
                    latest.narrative,
                    latest.decisions,
                    SceneContext.from_state(state, request.scene_type),
                )
            except OutputValidationError as e:
                log.warning("critic_output_invalid", scene_id=request.scene_id, errors=e.errors)
                return self._finish(request, latest, latest.narrative, attempt)

            verdict, feedback = self._apply_threshold(evaluation)
            log.info(
                "critic_verdict",
                scene_id=request.scene_id,
                attempt=attempt,
                decision=verdict,
                critic_decision=evaluation.decision,
                average=round(evaluation.average_quality(), 2),
            )

            if verdict == "ACCEPT":
                return self._finish(
                    request, latest, evaluation.edited_content or latest.narrative, attempt
                )
            if is_last:
                break
            constraints = feedback

        if latest is None:
            log.error("scene_synthesis_failed", scene_id=request.scene_id, reason=last_problem)
            raise SceneSynthesisError(request.scene_id, self._max_attempts, last_problem)

        log.warning(
            "scene_quality_gate_exhausted",
            scene_id=request.scene_id,
            attempts=self._max_attempts,
        )
        return self._finish(request, latest, latest.narrative, self._max_attempts)

    def _apply_threshold(self, evaluation: CriticEvaluation) -> tuple[str, list[str]]:
        """Final verdict plus the constraints to carry into the next attempt.

        An ACCEPT with a prose score under the mode's threshold is handled as
        a REWRITE naming the weak dimensions.
        """
        if evaluation.decision == "ACCEPT":
            if evaluation.passes_minimum_quality(self.quality_threshold):
                return "ACCEPT", []
            weak = evaluation.quality.below(self.quality_threshold)
            return "REWRITE", [
                f"Raise {', '.join(weak)} to at least {self.quality_threshold:g}/10.",
                *([evaluation.rewrite_instructions] if evaluation.rewrite_instructions else []),
            ]
        if evaluation.decision == "REWRITE":
            return "REWRITE", [evaluation.rewrite_instructions or evaluation.reason]
        return "REGENERATE", [
            f"PREVIOUS ATTEMPT FAILED: {evaluation.regenerate_reason or evaluation.reason}",
            *REGENERATE_GUIDANCE,
        ]

    @staticmethod
    def _to_draft(request: SceneRequest, generated: GeneratedScene) -> _Draft:
        decisions = []
        if not request.is_ending:
            decisions = [
                Decision(
                    id=f"{request.scene_id}_decision_{i}",
                    text=choice.text,
                    consequence_hint=choice.consequence_hint,
                    choice_order=i + 1,
                )
                for i, choice in enumerate(generated.decisions)
            ]
        return _Draft(generated.narrative, decisions, generated.ending_summary)

    @staticmethod
    def _finish(request: SceneRequest, draft: _Draft, content: str, attempts: int) -> Scene:
        scene = Scene(
            id=request.scene_id,
            scene_type=request.scene_type,
            level=request.level,
            content=content,
            decisions=draft.decisions,
            is_ending=request.is_ending,
            ending_quality=request.ending_quality if request.is_ending else None,
            ending_summary=(request.ending_summary or draft.ending_summary) if request.is_ending else None,
            previous_scene_ids=list(request.incoming_ids),
        )
        log.debug(
            "scene_generated",
            scene_id=scene.id,
            attempts=attempts,
            words=scene.word_count,
            decisions=len(scene.decisions),
        )
        return scene
