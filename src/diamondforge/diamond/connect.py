"""Decision wiring between consecutive levels."""

from __future__ import annotations

from typing import TYPE_CHECKING

from diamondforge.observability.logging import get_logger

if TYPE_CHECKING:
    from diamondforge.models.story import GenerationState

log = get_logger(__name__)


def connect_decisions(state: GenerationState, target_level: int) -> int:
    """Point the decisions of level ``target_level - 1`` at level ``target_level``.

    A source scene's decisions are dealt round-robin over the target scenes
    that list the source in their ``previous_scene_ids``. A source that no
    target lists falls back to the first target scene, so no decision is left
    dangling. Only ``leads_to`` is modified.

    Args:
        state: Generation state holding both levels.
        target_level: Level whose scenes were just generated (> 0).

    Returns:
        Number of decisions connected.
    """
    if target_level <= 0 or target_level >= len(state.scenes_by_level):
        return 0

    source_ids = state.scenes_by_level[target_level - 1]
    target_ids = state.scenes_by_level[target_level]
    if not source_ids or not target_ids:
        return 0

    connected = 0
    for source_id in source_ids:
        source = state.scenes.get(source_id)
        if source is None or not source.decisions:
            continue

        leading_to = [
            target_id
            for target_id in target_ids
            if target_id in state.scenes and source_id in state.scenes[target_id].previous_scene_ids
        ]
        if not leading_to:
            log.debug("decision_fallback_target", source=source_id, target=target_ids[0])

        for i, decision in enumerate(source.decisions):
            decision.leads_to = leading_to[i % len(leading_to)] if leading_to else target_ids[0]
            connected += 1

    log.debug("decisions_connected", level=target_level, decisions=connected)
    return connected
