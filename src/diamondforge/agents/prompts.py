"""Prompt builders for the world builder, scene writer and critic.

Templates live in ``diamondforge/prompts/templates``; this module gathers
the values each template needs from the generation state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from diamondforge.models.story import GenerationMode, SceneType
from diamondforge.prompts.compiler import CompiledPrompt, PromptCompiler

if TYPE_CHECKING:
    from diamondforge.models.story import Decision, EndingQuality, GenerationState

# Characters of each predecessor scene quoted in the scene prompt
EXCERPT_CHARS = 200

_compiler: PromptCompiler | None = None


def get_compiler() -> PromptCompiler:
    """Module-level compiler over the packaged templates."""
    global _compiler
    if _compiler is None:
        _compiler = PromptCompiler()
    return _compiler


@dataclass(frozen=True)
class SceneContext:
    """Story facts the critic needs to judge one scene."""

    genre: str
    tone: str
    difficulty: str
    player_name: str
    scene_type: SceneType
    min_words: int
    max_words: int

    @classmethod
    def from_state(cls, state: GenerationState, scene_type: SceneType) -> SceneContext:
        words = state.diamond_config.words_per_scene
        return cls(
            genre=str(state.genre),
            tone=str(state.tone),
            difficulty=str(state.difficulty),
            player_name=state.player.name,
            scene_type=scene_type,
            min_words=words.min,
            max_words=words.max,
        )


def format_excerpts(contents: list[str]) -> str:
    """Quote the opening of each predecessor scene, skipping empty ones."""
    non_empty = [c for c in contents if c]
    return "\n\n".join(
        f"[Previous path {i}]: {content[:EXCERPT_CHARS]}..."
        for i, content in enumerate(non_empty, start=1)
    )


def build_world_rules_prompt(
    state: GenerationState,
    compiler: PromptCompiler | None = None,
) -> CompiledPrompt:
    compiler = compiler or get_compiler()
    return compiler.compile(
        "world_rules",
        {
            "genre": str(state.genre),
            "premise": state.premise,
            "tone": str(state.tone),
            "difficulty": str(state.difficulty),
            "player_name": state.player.name,
            "player_personality": state.player.personality or "adaptable",
            "min_endings": state.diamond_config.min_endings,
            "max_endings": state.diamond_config.max_endings,
        },
    )


def build_scene_prompt(
    state: GenerationState,
    *,
    scene_id: str,
    scene_type: SceneType,
    level: int,
    previous_contents: list[str],
    decision_count: int,
    ending_quality: EndingQuality | None = None,
    ending_summary: str | None = None,
    constraints: list[str] | None = None,
    mode: GenerationMode = GenerationMode.DRAFT,
    compiler: PromptCompiler | None = None,
) -> CompiledPrompt:
    """Build the scene writer prompt for one attempt.

    The TASK section depends on ``scene_type``. ``constraints`` (corrective
    feedback from the previous attempt) are appended as an EDITOR FEEDBACK
    section. Polished mode extends the system prompt.
    """
    compiler = compiler or get_compiler()
    player = state.player
    words = state.diamond_config.words_per_scene

    values: dict[str, object] = {
        "player_name": player.name,
        "decision_count": decision_count,
        "ending_quality": str(ending_quality or "neutral"),
        "ending_summary": ending_summary or "Story concludes",
    }

    excerpts = format_excerpts(previous_contents)
    task_key = {
        SceneType.INTRO: "task_intro",
        SceneType.ENDING: "task_ending",
    }.get(scene_type, "task_branch")
    contract_key = "ending_contract" if decision_count == 0 else "decisions_contract"

    feedback = ""
    if constraints:
        feedback = compiler.section(
            "scene_writer", "feedback", {"constraints": "\n".join(f"- {c}" for c in constraints)}
        )

    compiled = compiler.compile(
        "scene_writer",
        {
            **values,
            "genre": str(state.genre),
            "setting": state.world_rules.setting if state.world_rules else "Unknown",
            "tone": str(state.tone),
            "protagonist": f"{player.name} ({player.personality})" if player.personality else player.name,
            "scene_id": scene_id,
            "scene_type": str(scene_type),
            "level_display": level + 1,
            "max_levels": state.diamond_config.max_levels,
            "min_words": words.min,
            "max_words": words.max,
            "style_guide": compiler.section("scene_writer", "style_guide"),
            "previous_section": (
                compiler.section("scene_writer", "previous_scenes", {"excerpts": excerpts})
                if excerpts
                else ""
            ),
            "task": compiler.section("scene_writer", task_key, values),
            "decisions_contract": compiler.section("scene_writer", contract_key, values),
            "feedback_section": feedback,
        },
    )

    if mode == GenerationMode.POLISHED:
        compiled.system += compiler.section("scene_writer", "polished_addendum")
    return compiled


def build_critic_prompt(
    content: str,
    decisions: list[Decision],
    context: SceneContext,
    compiler: PromptCompiler | None = None,
) -> CompiledPrompt:
    compiler = compiler or get_compiler()

    if decisions:
        lines = []
        for i, decision in enumerate(decisions, start=1):
            hint = f" (hint: {decision.consequence_hint})" if decision.consequence_hint else ""
            lines.append(f'{i}. "{decision.text}"{hint}')
        choice_section = compiler.section("scene_critic", "choices", {"choices": "\n".join(lines)})
    else:
        choice_section = compiler.section("scene_critic", "no_choices")

    return compiler.compile(
        "scene_critic",
        {
            "genre": context.genre,
            "tone": context.tone,
            "difficulty": context.difficulty,
            "player_name": context.player_name,
            "scene_type": str(context.scene_type),
            "min_words": context.min_words,
            "max_words": context.max_words,
            "content": content,
            "choice_section": choice_section,
            "word_count": len(content.split()),
        },
    )
