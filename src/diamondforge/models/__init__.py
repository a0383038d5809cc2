"""Pydantic models for the story graph and collaborator outputs.

``story`` holds the graph itself (scenes, decisions, world, configuration);
``generation`` holds the schemas requested from the LLM and the parsers that
turn raw responses into those schemas.
"""

from diamondforge.models.generation import (
    DEFAULT_PLANNED_ENDINGS,
    CriticEvaluation,
    CriticVerdict,
    GeneratedChoice,
    GeneratedScene,
    OutputValidationError,
    QualityScores,
    parse_critic_evaluation,
    parse_generated_scene,
    parse_world_rules,
)
from diamondforge.models.story import (
    MAX_DECISIONS_PER_SCENE,
    Decision,
    DiamondConfig,
    Difficulty,
    EndingQuality,
    GenerationMode,
    GenerationState,
    Genre,
    KeyCharacter,
    PlannedEnding,
    PlayerCustomization,
    Scene,
    SceneType,
    Tone,
    WordRange,
    WorldRules,
    create_generation_state,
)

__all__ = [
    "DEFAULT_PLANNED_ENDINGS",
    "MAX_DECISIONS_PER_SCENE",
    "CriticEvaluation",
    "CriticVerdict",
    "Decision",
    "DiamondConfig",
    "Difficulty",
    "EndingQuality",
    "GeneratedChoice",
    "GeneratedScene",
    "GenerationMode",
    "GenerationState",
    "Genre",
    "KeyCharacter",
    "OutputValidationError",
    "PlannedEnding",
    "PlayerCustomization",
    "QualityScores",
    "Scene",
    "SceneType",
    "Tone",
    "WordRange",
    "WorldRules",
    "create_generation_state",
    "parse_critic_evaluation",
    "parse_generated_scene",
    "parse_world_rules",
]
