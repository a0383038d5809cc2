"""Pure graph logic for the diamond: shape, topology, wiring and repair.

Nothing in this package talks to an LLM. Every function here is
deterministic given its inputs (topology takes an explicit ``random.Random``).
"""

from diamondforge.diamond.connect import connect_decisions
from diamondforge.diamond.shape import (
    calculate_diamond_shape,
    diamond_midpoint,
    ending_count,
    is_expanding_level,
    scene_id,
    total_scene_count,
)
from diamondforge.diamond.topology import resolve_incoming_scenes
from diamondforge.diamond.validation import (
    PathRepair,
    PathValidationReport,
    find_dangling_references,
    find_unreachable_scenes,
    validate_paths,
)

__all__ = [
    "PathRepair",
    "PathValidationReport",
    "calculate_diamond_shape",
    "connect_decisions",
    "diamond_midpoint",
    "ending_count",
    "find_dangling_references",
    "find_unreachable_scenes",
    "is_expanding_level",
    "resolve_incoming_scenes",
    "scene_id",
    "total_scene_count",
    "validate_paths",
]
