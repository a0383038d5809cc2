"""Story graph visualization.

Turns a generated diamond into DOT (Graphviz) or Mermaid markup: one row
per level, the intro at the top, endings at the bottom coloured by ending
quality. Pure graph walking, no LLM calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from diamondforge.models.story import EndingQuality
from diamondforge.observability.logging import get_logger

if TYPE_CHECKING:
    from diamondforge.export.base import StoryExport
    from diamondforge.models.story import GenerationState

log = get_logger(__name__)

_START_COLOR = "#90EE90"  # light green
_BRANCH_COLOR = "#ADD8E6"  # light blue
_DANGLING_COLOR = "#D3D3D3"  # light grey
_ENDING_COLORS: dict[EndingQuality | None, str] = {
    EndingQuality.BAD: "#F08080",
    EndingQuality.NEUTRAL: "#FFB6C1",
    EndingQuality.GOOD: "#FFD700",
    EndingQuality.BEST: "#98FB98",
    EndingQuality.SECRET: "#DDA0DD",
    None: "#FFB6C1",
}
LABEL_CHARS = 40


@dataclass
class VizNode:
    """A scene in the visualization."""

    id: str
    label: str
    level: int
    is_start: bool = False
    is_ending: bool = False
    ending_quality: EndingQuality | None = None


@dataclass
class VizEdge:
    """A decision in the visualization."""

    from_id: str
    to_id: str
    label: str = ""


@dataclass
class StoryGraph:
    """Nodes and edges of a story, plus the ids on each level."""

    nodes: list[VizNode]
    edges: list[VizEdge]
    levels: list[list[str]] = field(default_factory=list)


def build_story_graph(story: GenerationState | StoryExport) -> StoryGraph:
    """Extract visualization data from a generated story.

    Decisions pointing at unknown scenes are skipped with a warning.
    """
    start_id = story.scenes_by_level[0][0] if story.scenes_by_level and story.scenes_by_level[0] else None

    nodes: list[VizNode] = []
    edges: list[VizEdge] = []
    for level_ids in story.scenes_by_level:
        for sid in level_ids:
            scene = story.scenes.get(sid)
            if scene is None:
                continue
            nodes.append(
                VizNode(
                    id=sid,
                    label=_truncate(scene.ending_summary or scene.content.strip() or sid, LABEL_CHARS),
                    level=scene.level,
                    is_start=sid == start_id,
                    is_ending=scene.is_ending,
                    ending_quality=scene.ending_quality,
                )
            )
            for decision in scene.decisions:
                if decision.leads_to not in story.scenes:
                    log.warning("decision_missing_target", decision_id=decision.id, target=decision.leads_to)
                    continue
                edges.append(VizEdge(from_id=sid, to_id=decision.leads_to, label=decision.text))

    log.info("story_graph_built", nodes=len(nodes), edges=len(edges))
    return StoryGraph(
        nodes=nodes,
        edges=edges,
        levels=[[sid for sid in ids if sid in story.scenes] for ids in story.scenes_by_level],
    )


def render_dot(sg: StoryGraph, *, no_labels: bool = False) -> str:
    """Render a StoryGraph as DOT markup, one rank per level."""
    lines = [
        "digraph story {",
        "  rankdir=TB;",
        '  node [fontname="Helvetica" fontsize=10 style="filled,solid"];',
        '  edge [fontname="Helvetica" fontsize=8];',
        "",
    ]

    for node in sg.nodes:
        attr_str = " ".join(f"{k}={v}" for k, v in _dot_node_attrs(node).items())
        lines.append(f'  "{node.id}" [{attr_str}];')

    lines.append("")
    for level_ids in sg.levels:
        if len(level_ids) > 1:
            members = " ".join(f'"{sid}";' for sid in level_ids)
            lines.append(f"  {{ rank=same; {members} }}")

    lines.append("")
    for edge in sg.edges:
        suffix = ""
        if not no_labels and edge.label:
            suffix = f' [label="{_dot_escape(_truncate(edge.label, LABEL_CHARS))}"]'
        lines.append(f'  "{edge.from_id}" -> "{edge.to_id}"{suffix};')

    lines.append("}")
    return "\n".join(lines)


def render_mermaid(sg: StoryGraph, *, no_labels: bool = False) -> str:
    """Render a StoryGraph as Mermaid markup."""
    lines = ["graph TD"]

    for node in sg.nodes:
        safe_id = _mermaid_id(node.id)
        label = _mermaid_escape(node.label)
        if node.is_start:
            lines.append(f'  {safe_id}(["{label}"]):::start')
        elif node.is_ending:
            lines.append(f'  {safe_id}[["{label}"]]:::{_ending_class(node.ending_quality)}')
        else:
            lines.append(f'  {safe_id}["{label}"]')

    lines.append("")
    for edge in sg.edges:
        src = _mermaid_id(edge.from_id)
        dst = _mermaid_id(edge.to_id)
        if not no_labels and edge.label:
            lines.append(f'  {src} -->|"{_mermaid_escape(_truncate(edge.label, LABEL_CHARS))}"| {dst}')
        else:
            lines.append(f"  {src} --> {dst}")

    lines.append("")
    lines.append(f"  classDef start fill:{_START_COLOR},stroke:#333")
    for quality in EndingQuality:
        lines.append(f"  classDef {_ending_class(quality)} fill:{_ENDING_COLORS[quality]},stroke:#333")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ending_class(quality: EndingQuality | None) -> str:
    return f"ending_{quality or 'neutral'}"


def _truncate(text: str, max_len: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _dot_node_attrs(node: VizNode) -> dict[str, str]:
    attrs: dict[str, str] = {}
    if node.is_start:
        attrs["shape"] = "doubleoctagon"
        attrs["fillcolor"] = f'"{_START_COLOR}"'
    elif node.is_ending:
        attrs["shape"] = "octagon"
        attrs["fillcolor"] = f'"{_ENDING_COLORS.get(node.ending_quality, _DANGLING_COLOR)}"'
    else:
        attrs["shape"] = "box"
        attrs["fillcolor"] = f'"{_BRANCH_COLOR}"'
    attrs["label"] = f'"{_dot_escape(node.label)}"'
    return attrs


def _dot_escape(text: str) -> str:
    """Escape special characters for DOT labels."""
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _mermaid_id(node_id: str) -> str:
    return node_id.replace(" ", "_").replace("-", "_")


def _mermaid_escape(text: str) -> str:
    return text.replace('"', "&quot;").replace("\n", " ")
