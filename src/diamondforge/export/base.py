"""Export model and Exporter protocol.

``StoryExport`` is the persisted form of a finished run: the inputs, the
world, the graph and a few summary counts. It round-trips back into a
``GenerationState``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field, computed_field

from diamondforge.models.story import (
    DiamondConfig,
    Difficulty,
    GenerationState,
    Genre,
    PlayerCustomization,
    Scene,
    Tone,
    WorldRules,
)

if TYPE_CHECKING:
    from pathlib import Path

TITLE_WORDS = 5


class StoryExport(BaseModel):
    """A finished story, ready to write to disk."""

    title: str
    genre: Genre
    tone: Tone
    difficulty: Difficulty
    preset: str
    premise: str
    player: PlayerCustomization
    world_rules: WorldRules | None = None
    diamond_config: DiamondConfig
    scenes: dict[str, Scene]
    scenes_by_level: list[list[str]]
    total_scenes: int
    total_endings: int
    total_words: int = 0
    exported_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def start_scene_id(self) -> str | None:
        if self.scenes_by_level and self.scenes_by_level[0]:
            return self.scenes_by_level[0][0]
        return None

    def to_state(self) -> GenerationState:
        """Rebuild the generation state this export was made from."""
        return GenerationState(
            genre=self.genre,
            tone=self.tone,
            difficulty=self.difficulty,
            preset=self.preset,
            premise=self.premise,
            player=self.player,
            world_rules=self.world_rules,
            diamond_config=self.diamond_config,
            scenes={sid: scene.model_copy(deep=True) for sid, scene in self.scenes.items()},
            scenes_by_level=[list(ids) for ids in self.scenes_by_level],
            current_level=max(len(self.scenes_by_level) - 1, 0),
            scenes_generated=self.total_scenes,
            total_words=self.total_words,
        )


def generate_title(state: GenerationState) -> str:
    """First five words of the setting (or the premise), with "..." when cut."""
    source = state.world_rules.setting if state.world_rules else state.premise
    words = source.split(" ")[:TITLE_WORDS]
    return " ".join(words) + ("..." if len(words) >= TITLE_WORDS else "")


def build_story_export(state: GenerationState) -> StoryExport:
    return StoryExport(
        title=generate_title(state),
        genre=state.genre,
        tone=state.tone,
        difficulty=state.difficulty,
        preset=state.preset,
        premise=state.premise,
        player=state.player,
        world_rules=state.world_rules,
        diamond_config=state.diamond_config,
        scenes=state.scenes,
        scenes_by_level=state.scenes_by_level,
        total_scenes=len(state.scenes),
        total_endings=state.ending_count(),
        total_words=state.total_words,
    )


class Exporter(Protocol):
    """Writes a story export in one format."""

    format_name: str

    def export(self, story: StoryExport, output_dir: Path) -> Path:
        """Write ``story`` under ``output_dir`` and return the file written."""
        ...
