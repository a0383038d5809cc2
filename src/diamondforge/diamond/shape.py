"""Diamond shape calculation.

Pure functions deciding how many scenes each level of a story gets. No LLM
calls and no state: the same configuration always yields the same shape.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from diamondforge.models.story import DiamondConfig


def diamond_midpoint(config: DiamondConfig) -> int:
    """Last level of the expanding phase."""
    return config.max_levels // 2


def is_expanding_level(level: int, config: DiamondConfig) -> bool:
    """True for levels 1..midpoint, where the diamond is still widening."""
    return 0 < level <= diamond_midpoint(config)


def ending_count(config: DiamondConfig) -> int:
    """Number of ending scenes: the rounded-up middle of the ending range."""
    return math.ceil((config.min_endings + config.max_endings) / 2)


def calculate_diamond_shape(config: DiamondConfig) -> list[int]:
    """Return the scene count of every level, intro first.

    Level 0 is always one intro scene and the last level holds the endings.
    In between the width grows linearly to ``max_width`` at the midpoint and
    then shrinks linearly back toward ``min_endings``.

    Args:
        config: Diamond configuration.

    Returns:
        List of length ``config.max_levels``.
    """
    levels = config.max_levels
    mid = diamond_midpoint(config)
    span = levels - 1 - mid
    shape: list[int] = []

    for level in range(levels):
        if level == 0:
            shape.append(1)
        elif level == levels - 1:
            shape.append(ending_count(config))
        elif level <= mid:
            progress = level / mid
            width = math.ceil(1 + (config.max_width - 1) * progress)
            shape.append(min(width, config.max_width))
        else:
            remaining = levels - 1 - level
            progress = remaining / span
            shape.append(
                math.ceil(config.min_endings + (config.max_width - config.min_endings) * progress)
            )

    return shape


def total_scene_count(shape: list[int]) -> int:
    return sum(shape)


def scene_id(level: int, index: int) -> str:
    """Deterministic scene identifier for a level/index pair."""
    return f"scene_L{level}_{index}"
