"""Final structural pass over a generated story graph.

Runs once after every level is generated. Problems are repaired in place
rather than raised, so a finished run always hands back a closed graph:
endings only on the last level, a way forward from every other scene, and
no decision pointing at a scene that does not exist.

The pass is idempotent: validating an already-valid state changes nothing
and reports no repairs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from diamondforge.models.story import Decision
from diamondforge.observability.logging import get_logger

if TYPE_CHECKING:
    from diamondforge.models.story import GenerationState, Scene

log = get_logger(__name__)

FALLBACK_DECISION_TEXT = "Press on"

RepairKind = Literal[
    "ending_enforced",
    "ending_cleared",
    "fallback_decision",
    "dangling_decision",
    "orphan_reattached",
]


@dataclass
class PathRepair:
    """One in-place fix applied by validate_paths.

    Attributes:
        kind: What was repaired.
        scene_id: Scene that was modified.
        detail: Human-readable description.
        decision_id: Decision that was modified, when applicable.
    """

    kind: RepairKind
    scene_id: str
    detail: str
    decision_id: str | None = None


@dataclass
class PathValidationReport:
    """Outcome of validate_paths.

    Attributes:
        repairs: Fixes applied to the state.
        warnings: Problems that could not be repaired (e.g. a scene nothing
            can be retargeted to reach).
    """

    repairs: list[PathRepair] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        """True if the graph needed no repairs and raised no warnings."""
        return not self.repairs and not self.warnings

    @property
    def summary(self) -> str:
        counts = Counter(r.kind for r in self.repairs)
        parts = [f"{n} {kind}" for kind, n in sorted(counts.items())]
        if self.warnings:
            parts.append(f"{len(self.warnings)} warnings")
        return ", ".join(parts) or "clean"

    def _repair(self, repair: PathRepair) -> None:
        log.warning(
            "path_repair",
            kind=repair.kind,
            scene_id=repair.scene_id,
            decision_id=repair.decision_id,
            detail=repair.detail,
        )
        self.repairs.append(repair)


def _next_level_ids(state: GenerationState, scene: Scene) -> list[str]:
    next_level = scene.level + 1
    if next_level >= len(state.scenes_by_level):
        return []
    return [sid for sid in state.scenes_by_level[next_level] if sid in state.scenes]


def _enforce_ending_flags(state: GenerationState, report: PathValidationReport) -> None:
    last_level = state.last_level
    for scene in state.scenes.values():
        if scene.level == last_level:
            if not scene.is_ending or scene.decisions:
                scene.is_ending = True
                scene.decisions = []
                report._repair(
                    PathRepair("ending_enforced", scene.id, "last-level scene made a bare ending")
                )
        elif scene.is_ending:
            scene.is_ending = False
            report._repair(
                PathRepair("ending_cleared", scene.id, f"level {scene.level} is not the last level")
            )


def _ensure_way_forward(state: GenerationState, report: PathValidationReport) -> None:
    for scene in state.scenes.values():
        if scene.is_ending or scene.decisions:
            continue
        targets = _next_level_ids(state, scene)
        if not targets:
            report.warnings.append(f"{scene.id} has no decisions and no next level")
            log.warning("scene_dead_end", scene_id=scene.id)
            continue
        scene.decisions.append(
            Decision(
                id=f"{scene.id}_decision_0",
                text=FALLBACK_DECISION_TEXT,
                leads_to=targets[0],
                choice_order=1,
            )
        )
        report._repair(
            PathRepair(
                "fallback_decision",
                scene.id,
                f"non-ending scene had no decisions; added one to {targets[0]}",
                decision_id=f"{scene.id}_decision_0",
            )
        )


def _repair_dangling(state: GenerationState, report: PathValidationReport) -> None:
    for scene in state.scenes.values():
        targets = _next_level_ids(state, scene)
        for decision in scene.decisions:
            if decision.leads_to in targets:
                continue
            if not targets:
                report.warnings.append(f"{decision.id} has no next-level scene to point at")
                continue
            old = decision.leads_to or "<unset>"
            decision.leads_to = targets[0]
            report._repair(
                PathRepair(
                    "dangling_decision",
                    scene.id,
                    f"{old} is not a scene on level {scene.level + 1}; now {targets[0]}",
                    decision_id=decision.id,
                )
            )


def _reattach_orphans(state: GenerationState, report: PathValidationReport) -> None:
    """Give unreachable scenes an inbound decision where that costs nothing.

    Only a decision whose target is also reached by another decision of the
    same source is moved, so no scene loses its last way in.
    """
    for level in range(1, len(state.scenes_by_level)):
        sources = [state.scenes[sid] for sid in state.scenes_by_level[level - 1] if sid in state.scenes]
        reached = {d.leads_to for s in sources for d in s.decisions}

        for orphan_id in state.scenes_by_level[level]:
            if orphan_id in reached or orphan_id not in state.scenes:
                continue
            incoming = set(state.scenes[orphan_id].previous_scene_ids)
            candidates = [s for s in sources if s.id in incoming] + [
                s for s in sources if s.id not in incoming
            ]

            for source in candidates:
                hits = Counter(d.leads_to for d in source.decisions)
                spare = next(
                    (d for d in reversed(source.decisions) if hits[d.leads_to] > 1),
                    None,
                )
                if spare is None:
                    continue
                old = spare.leads_to
                spare.leads_to = orphan_id
                reached.add(orphan_id)
                report._repair(
                    PathRepair(
                        "orphan_reattached",
                        source.id,
                        f"{orphan_id} was unreachable; decision moved from {old}",
                        decision_id=spare.id,
                    )
                )
                break
            else:
                report.warnings.append(f"{orphan_id} is not reachable from level {level - 1}")
                log.warning("scene_unreachable", scene_id=orphan_id, level=level)


def validate_paths(state: GenerationState) -> PathValidationReport:
    """Check and repair the finished graph in place.

    Order matters: ending flags first (so last-level decisions are gone),
    then missing decisions, then dangling targets, then unreachable scenes.

    Args:
        state: Fully generated state. Modified in place.

    Returns:
        Report of the repairs made and anything left unrepairable.
    """
    report = PathValidationReport()
    _enforce_ending_flags(state, report)
    _ensure_way_forward(state, report)
    _repair_dangling(state, report)
    _reattach_orphans(state, report)

    log.info(
        "paths_validated",
        scenes=len(state.scenes),
        repairs=len(report.repairs),
        warnings=len(report.warnings),
    )
    return report


def find_dangling_references(state: GenerationState) -> list[str]:
    """Decision ids whose ``leads_to`` names no existing scene."""
    return [
        decision.id
        for scene in state.scenes.values()
        for decision in scene.decisions
        if decision.leads_to not in state.scenes
    ]


def find_unreachable_scenes(state: GenerationState) -> list[str]:
    """Scene ids that cannot be reached from the level-0 scene."""
    if not state.scenes_by_level or not state.scenes_by_level[0]:
        return sorted(state.scenes)

    seen: set[str] = set()
    frontier = [sid for sid in state.scenes_by_level[0] if sid in state.scenes]
    while frontier:
        current = frontier.pop()
        if current in seen:
            continue
        seen.add(current)
        frontier.extend(
            d.leads_to for d in state.scenes[current].decisions if d.leads_to in state.scenes
        )
    return sorted(set(state.scenes) - seen)
