"""Incoming-connection topology for diamond levels.

Decides which previous-level scenes lead into each new scene. While the
diamond widens, every new scene hangs off one predecessor (occasionally two,
for convergence variety). While it narrows, each new scene collects a
contiguous run of predecessors so that every previous scene keeps a way
forward.
"""

from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING

from diamondforge.diamond.shape import diamond_midpoint

if TYPE_CHECKING:
    from diamondforge.models.story import DiamondConfig

# Probability threshold for the optional secondary link while expanding.
SECONDARY_LINK_THRESHOLD = 0.5


def _expanding_incoming(
    index: int,
    count: int,
    previous_ids: list[str],
    rng: random.Random,
) -> list[str]:
    prev_count = len(previous_ids)
    ratio = prev_count / count
    primary = min(max(math.floor(index * ratio), 0), prev_count - 1)
    incoming = [previous_ids[primary]]

    # Best-effort enrichment: nothing downstream depends on this link.
    if index > 0 and rng.random() > SECONDARY_LINK_THRESHOLD:
        secondary = previous_ids[max(0, primary - 1)]
        if secondary not in incoming:
            incoming.append(secondary)

    return incoming


def _contracting_incoming(index: int, count: int, previous_ids: list[str]) -> list[str]:
    prev_count = len(previous_ids)
    ratio = count / prev_count
    start = math.floor(index / ratio)
    end = min(prev_count - 1, math.floor((index + 1) / ratio))

    incoming = [previous_ids[p] for p in range(start, end + 1) if 0 <= p < prev_count]
    if not incoming:
        incoming.append(previous_ids[0])
    return incoming


def resolve_incoming_scenes(
    level: int,
    index: int,
    count: int,
    previous_ids: list[str],
    config: DiamondConfig,
    rng: random.Random | None = None,
) -> list[str]:
    """Return the previous-level scene ids that lead into scene ``index``.

    Args:
        level: Level of the new scene.
        index: Position of the new scene within its level.
        count: Number of scenes at ``level``.
        previous_ids: Scene ids of level ``level - 1``, in order.
        config: Diamond configuration (fixes the expanding/contracting split).
        rng: Source of randomness for secondary links. Pass a seeded
            ``random.Random`` for reproducible topologies.

    Returns:
        Deduplicated ids in predecessor order. Empty only for level 0 (or
        when the previous level is empty).
    """
    if level == 0 or not previous_ids or count <= 0:
        return []

    if level <= diamond_midpoint(config):
        incoming = _expanding_incoming(index, count, previous_ids, rng or random.Random())
    else:
        incoming = _contracting_incoming(index, count, previous_ids)

    return list(dict.fromkeys(incoming))
