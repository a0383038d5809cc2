"""Scene critic collaborator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from diamondforge.agents.prompts import build_critic_prompt
from diamondforge.models.generation import CriticEvaluation, parse_critic_evaluation
from diamondforge.observability.logging import get_logger

if TYPE_CHECKING:
    from diamondforge.agents.prompts import SceneContext
    from diamondforge.models.story import Decision
    from diamondforge.prompts.compiler import PromptCompiler
    from diamondforge.providers.base import StructuredGenerator

log = get_logger(__name__)


class SceneCritic(Protocol):
    """Judges a scene draft: ACCEPT, REWRITE or REGENERATE."""

    async def evaluate(
        self,
        content: str,
        decisions: list[Decision],
        context: SceneContext,
    ) -> CriticEvaluation:
        """Score ``content`` and its choices.

        Raises:
            ProviderError: If the underlying model call fails.
            OutputValidationError: If the verdict cannot be read.
        """
        ...


class EditorCritic:
    """``SceneCritic`` that asks the generation collaborator for a verdict.

    Args:
        generator: Collaborator used for the evaluation call.
        compiler: Prompt compiler; defaults to the packaged templates.
    """

    def __init__(
        self,
        generator: StructuredGenerator,
        compiler: PromptCompiler | None = None,
    ) -> None:
        self._generator = generator
        self._compiler = compiler

    async def evaluate(
        self,
        content: str,
        decisions: list[Decision],
        context: SceneContext,
    ) -> CriticEvaluation:
        prompt = build_critic_prompt(content, decisions, context, self._compiler)
        raw = await self._generator.generate(prompt.system, prompt.user, CriticEvaluation)
        evaluation = parse_critic_evaluation(raw)
        log.debug(
            "critic_evaluated",
            scene_type=str(context.scene_type),
            decision=evaluation.decision,
            average=round(evaluation.average_quality(), 2),
        )
        return evaluation
