"""Story size presets.

Each preset is a complete ``DiamondConfig``:

    quick: 4 levels, up to 4 wide, 2-3 endings, 2 choices per scene
    standard: 5 levels, up to 5 wide, 3-5 endings
    epic: 6 levels, up to 6 wide, 4-7 endings
"""

from __future__ import annotations

from diamondforge.models.story import DiamondConfig, WordRange

STORY_PRESETS: dict[str, DiamondConfig] = {
    "quick": DiamondConfig(
        max_levels=4,
        max_width=4,
        min_endings=2,
        max_endings=3,
        decisions_per_scene=2,
        words_per_scene=WordRange(min=250, max=400),
    ),
    "standard": DiamondConfig(
        max_levels=5,
        max_width=5,
        min_endings=3,
        max_endings=5,
        decisions_per_scene=3,
        words_per_scene=WordRange(min=300, max=500),
    ),
    "epic": DiamondConfig(
        max_levels=6,
        max_width=6,
        min_endings=4,
        max_endings=7,
        decisions_per_scene=3,
        words_per_scene=WordRange(min=400, max=600),
    ),
}

VALID_PRESETS = frozenset(STORY_PRESETS)
DEFAULT_PRESET = "quick"


def get_diamond_preset(preset: str = DEFAULT_PRESET) -> DiamondConfig:
    """Resolve a preset name to its diamond configuration.

    Raises:
        ValueError: If the preset name is not recognized.
    """
    if preset not in STORY_PRESETS:
        raise ValueError(f"Unknown story preset: {preset!r}. Valid presets: {sorted(VALID_PRESETS)}")
    return STORY_PRESETS[preset]
