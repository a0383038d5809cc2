"""Story graph models.

These models describe the diamond-shaped story graph built by a generation
run: the configuration that fixes its shape, the world the story takes
place in, and the scenes and decisions that make up the graph itself.

Diamond shape:
- Level 0: one intro scene
- Levels 1..midpoint: widen toward ``max_width``
- Midpoint..last-1: narrow toward the ending count
- Last level: ending scenes, no decisions
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_DECISIONS_PER_SCENE = 4


class SceneType(StrEnum):
    """Role of a scene in the diamond."""

    INTRO = "intro"
    BRANCH = "branch"
    # Reserved: the current topology never produces consequence scenes.
    CONSEQUENCE = "consequence"
    ENDING = "ending"


class EndingQuality(StrEnum):
    """Outcome tier of an ending scene."""

    BAD = "bad"
    NEUTRAL = "neutral"
    GOOD = "good"
    BEST = "best"
    SECRET = "secret"


class Genre(StrEnum):
    FANTASY = "fantasy"
    MYSTERY = "mystery"
    SCIFI = "scifi"
    ROMANCE = "romance"
    HORROR = "horror"


class Tone(StrEnum):
    LIGHT = "light"
    BALANCED = "balanced"
    DARK = "dark"


class Difficulty(StrEnum):
    """How forgiving poor choices are."""

    FORGIVING = "forgiving"
    NORMAL = "normal"
    PUNISHING = "punishing"


class GenerationMode(StrEnum):
    """Speed/quality trade-off for a run.

    ``draft`` only sends intro and ending scenes to the critic; ``polished``
    reviews every scene and raises the acceptance threshold.
    """

    DRAFT = "draft"
    POLISHED = "polished"


class WordRange(BaseModel):
    """Target length of a scene in words."""

    model_config = ConfigDict(frozen=True)

    min: int = Field(default=300, ge=1)
    max: int = Field(default=500, ge=1)

    @model_validator(mode="after")
    def min_not_above_max(self) -> WordRange:
        if self.min > self.max:
            msg = f"words_per_scene.min ({self.min}) exceeds max ({self.max})"
            raise ValueError(msg)
        return self


class DiamondConfig(BaseModel):
    """Shape parameters of the diamond. Immutable once a run starts."""

    model_config = ConfigDict(frozen=True)

    max_levels: int = Field(ge=3, le=6, description="Total depth of diamond")
    max_width: int = Field(ge=2, le=6, description="Maximum scenes at widest level")
    min_endings: int = Field(ge=2, le=4)
    max_endings: int = Field(ge=3, le=8)
    decisions_per_scene: int = Field(default=3, ge=2, le=4, description="Choices at each branch")
    words_per_scene: WordRange = Field(default_factory=WordRange)

    @model_validator(mode="after")
    def endings_range_ordered(self) -> DiamondConfig:
        if self.min_endings > self.max_endings:
            msg = f"min_endings ({self.min_endings}) exceeds max_endings ({self.max_endings})"
            raise ValueError(msg)
        return self


class PlayerCustomization(BaseModel):
    """Minimal personalization of the protagonist."""

    name: str = Field(min_length=1, max_length=50)
    gender: str = Field(default="neutral", pattern="^(male|female|neutral)$")
    personality: str | None = Field(default=None, max_length=100)


class KeyCharacter(BaseModel):
    """A non-player character the protagonist will meet."""

    name: str = Field(min_length=1)
    role: str = "supporting"
    relationship_to_player: str = "acquaintance"


class PlannedEnding(BaseModel):
    """An ending planned up front, assigned to ending scenes in rotation."""

    quality: EndingQuality = EndingQuality.NEUTRAL
    condition: str = "Through player choices"
    summary: str = "Story concludes"


class WorldRules(BaseModel):
    """The story world, produced once per run and read-only afterwards."""

    setting: str
    key_characters: list[KeyCharacter] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    possible_endings: list[PlannedEnding] = Field(default_factory=list)


class Decision(BaseModel):
    """A choice offered at the end of a scene."""

    id: str
    text: str
    consequence_hint: str | None = None
    leads_to: str = Field(default="", description="Target scene id; empty until connected")
    choice_order: int = Field(ge=1, le=MAX_DECISIONS_PER_SCENE)


class Scene(BaseModel):
    """A node in the story graph."""

    id: str
    scene_type: SceneType
    level: int = Field(ge=0, description="Depth in the diamond (0 = intro)")
    content: str
    decisions: list[Decision] = Field(default_factory=list, max_length=MAX_DECISIONS_PER_SCENE)
    is_ending: bool = False
    ending_quality: EndingQuality | None = None
    ending_summary: str | None = None
    previous_scene_ids: list[str] = Field(
        default_factory=list, description="Previous-level scenes that can lead here"
    )

    @property
    def word_count(self) -> int:
        return len(self.content.split())


class GenerationState(BaseModel):
    """Everything one generation run reads and builds.

    Inputs and ``diamond_config`` are fixed when the state is created;
    ``world_rules`` is written once. ``scenes`` and ``scenes_by_level`` grow
    level by level. A state belongs to exactly one run.
    """

    genre: Genre
    tone: Tone = Tone.BALANCED
    difficulty: Difficulty = Difficulty.NORMAL
    preset: str = "quick"
    premise: str = Field(min_length=1)
    player: PlayerCustomization

    world_rules: WorldRules | None = None
    diamond_config: DiamondConfig

    scenes: dict[str, Scene] = Field(default_factory=dict)
    scenes_by_level: list[list[str]] = Field(default_factory=list)

    current_level: int = 0
    scenes_generated: int = 0
    total_words: int = 0

    @model_validator(mode="after")
    def size_levels(self) -> GenerationState:
        """Give every level an (initially empty) id list."""
        missing = self.diamond_config.max_levels - len(self.scenes_by_level)
        if missing > 0:
            self.scenes_by_level.extend([] for _ in range(missing))
        return self

    @property
    def last_level(self) -> int:
        return self.diamond_config.max_levels - 1

    def level_scenes(self, level: int) -> list[Scene]:
        """Scenes at ``level`` in generation order (empty when out of range)."""
        if not 0 <= level < len(self.scenes_by_level):
            return []
        return [self.scenes[sid] for sid in self.scenes_by_level[level] if sid in self.scenes]

    def ending_count(self) -> int:
        return sum(1 for scene in self.scenes.values() if scene.is_ending)


def create_generation_state(
    *,
    genre: Genre | str,
    premise: str,
    player: PlayerCustomization,
    diamond_config: DiamondConfig,
    tone: Tone | str = Tone.BALANCED,
    difficulty: Difficulty | str = Difficulty.NORMAL,
    preset: str = "custom",
) -> GenerationState:
    """Create an empty state ready for a run."""
    return GenerationState(
        genre=Genre(genre),
        tone=Tone(tone),
        difficulty=Difficulty(difficulty),
        preset=preset,
        premise=premise,
        player=player,
        diamond_config=diamond_config,
    )
