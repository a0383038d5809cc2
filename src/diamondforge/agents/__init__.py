"""LLM-facing collaborators and their prompt builders."""

from diamondforge.agents.critic import EditorCritic, SceneCritic
from diamondforge.agents.prompts import (
    SceneContext,
    build_critic_prompt,
    build_scene_prompt,
    build_world_rules_prompt,
    format_excerpts,
    get_compiler,
)

__all__ = [
    "EditorCritic",
    "SceneContext",
    "SceneCritic",
    "build_critic_prompt",
    "build_scene_prompt",
    "build_world_rules_prompt",
    "format_excerpts",
    "get_compiler",
]
