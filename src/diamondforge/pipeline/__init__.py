"""Generation pipeline: configuration, scene synthesis, orchestration and jobs."""

from diamondforge.pipeline.config import (
    ProjectConfig,
    ProjectConfigError,
    create_default_config,
    load_or_default_config,
    load_project_config,
)
from diamondforge.pipeline.jobs import (
    JobNotFoundError,
    JobRecord,
    JobStatus,
    StoryJobRunner,
    StoryRequest,
)
from diamondforge.pipeline.orchestrator import DiamondOrchestrator, WorldBuildingError
from diamondforge.pipeline.presets import STORY_PRESETS, VALID_PRESETS, get_diamond_preset
from diamondforge.pipeline.synthesizer import (
    MAX_SCENE_ATTEMPTS,
    SceneRequest,
    SceneSynthesisError,
    SceneSynthesizer,
)

__all__ = [
    "MAX_SCENE_ATTEMPTS",
    "STORY_PRESETS",
    "VALID_PRESETS",
    "DiamondOrchestrator",
    "JobNotFoundError",
    "JobRecord",
    "JobStatus",
    "ProjectConfig",
    "ProjectConfigError",
    "SceneRequest",
    "SceneSynthesisError",
    "SceneSynthesizer",
    "StoryJobRunner",
    "StoryRequest",
    "WorldBuildingError",
    "create_default_config",
    "get_diamond_preset",
    "load_or_default_config",
    "load_project_config",
]
