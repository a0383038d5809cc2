"""LLM output schemas and their validate-and-default parsers.

Each collaborator call asks for one of the schemas below. What comes back
is not trusted: providers drop optional fields, send ``null``, change enum
casing, or nest strings in objects. The ``parse_*`` functions turn whatever
arrived into a strict internal type, filling documented defaults for
optional fields and raising ``OutputValidationError`` only when a required
field is missing or unusable. That error is the signal for the caller to
retry with a corrective prompt.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from diamondforge.models.story import (
    MAX_DECISIONS_PER_SCENE,
    EndingQuality,
    KeyCharacter,
    PlannedEnding,
    WorldRules,
)

if TYPE_CHECKING:
    from diamondforge.models.story import DiamondConfig

CriticVerdict = Literal["ACCEPT", "REWRITE", "REGENERATE"]

DEFAULT_SCORE = 7.0

# Used when the world builder plans no endings at all.
DEFAULT_PLANNED_ENDINGS = (
    PlannedEnding(quality=EndingQuality.BAD, condition="Poor choices", summary="Unfavorable outcome"),
    PlannedEnding(quality=EndingQuality.GOOD, condition="Good choices", summary="Positive outcome"),
    PlannedEnding(quality=EndingQuality.BEST, condition="Best choices", summary="Optimal outcome"),
)


class OutputValidationError(Exception):
    """Collaborator output did not match the requested shape.

    Attributes:
        schema_name: Name of the schema that was requested.
        errors: Human-readable problems, one per entry.
    """

    def __init__(self, schema_name: str, errors: list[str]) -> None:
        self.schema_name = schema_name
        self.errors = errors
        super().__init__(f"Invalid {schema_name} output: {'; '.join(errors)}")

    def to_feedback(self) -> str:
        """Format the problems as a corrective instruction for the next attempt."""
        lines = [f"Your previous response was not valid {self.schema_name} JSON:"]
        lines.extend(f"- {error}" for error in self.errors)
        lines.append("Return a single JSON object with every required field filled in.")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Output schemas (sent to the provider as JSON schema)
# ---------------------------------------------------------------------------


class GeneratedChoice(BaseModel):
    """One player choice proposed by the scene writer."""

    text: str = Field(description="Choice text (1-2 sentences)")
    consequence_hint: str | None = Field(default=None, description="Subtle hint about outcome")


class GeneratedScene(BaseModel):
    """Scene writer output."""

    narrative: str = Field(description="The scene content")
    decisions: list[GeneratedChoice] = Field(
        default_factory=list, description="Player choices - REQUIRED for non-ending scenes"
    )
    ending_summary: str | None = Field(
        default=None, description="Brief ending description if this is an ending"
    )


class QualityScores(BaseModel):
    """Critic scores, 0-10 each."""

    immersion: float = Field(default=DEFAULT_SCORE, ge=0, le=10)
    pacing: float = Field(default=DEFAULT_SCORE, ge=0, le=10)
    voice: float = Field(default=DEFAULT_SCORE, ge=0, le=10)
    choices: float = Field(default=DEFAULT_SCORE, ge=0, le=10)

    def average(self) -> float:
        return (self.immersion + self.pacing + self.voice + self.choices) / 4

    def below(self, threshold: float) -> list[str]:
        """Names of the prose dimensions scoring under ``threshold``.

        ``choices`` is left out: ending scenes have none to score.
        """
        scores = {"immersion": self.immersion, "pacing": self.pacing, "voice": self.voice}
        return [name for name, score in scores.items() if score < threshold]


class CriticEvaluation(BaseModel):
    """Critic verdict on one scene draft."""

    decision: CriticVerdict
    edited_content: str | None = None
    quality: QualityScores = Field(default_factory=QualityScores)
    rewrite_instructions: str | None = None
    regenerate_reason: str | None = None
    reason: str = "Scene evaluated"

    def average_quality(self) -> float:
        return self.quality.average()

    def passes_minimum_quality(self, threshold: float = 6) -> bool:
        """True when immersion, pacing and voice all reach ``threshold``."""
        return not self.quality.below(threshold)


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def _as_dict(raw: Any, schema_name: str) -> dict[str, Any]:
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise OutputValidationError(schema_name, [f"response is not JSON ({e.msg})"]) from e
        if isinstance(loaded, dict):
            return loaded
    raise OutputValidationError(schema_name, [f"expected a JSON object, got {type(raw).__name__}"])


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _text_or(value: Any, default: str) -> str:
    return _optional_text(value) or default


def parse_generated_scene(raw: Any) -> GeneratedScene:
    """Validate scene writer output.

    ``narrative`` is required. Choices without text are dropped, bare
    strings are accepted as choice text, and anything past four choices is
    cut off. An empty choice list is *not* an error here; whether a scene
    needs choices is the caller's decision.

    Raises:
        OutputValidationError: If ``narrative`` is missing or blank.
    """
    data = _as_dict(raw, "GeneratedScene")

    narrative = data.get("narrative")
    if not isinstance(narrative, str) or not narrative.strip():
        raise OutputValidationError(
            "GeneratedScene", ['"narrative" is required and must be a non-empty string']
        )

    raw_choices = data.get("decisions")
    choices: list[GeneratedChoice] = []
    if isinstance(raw_choices, list):
        for item in raw_choices:
            if isinstance(item, str):
                item = {"text": item}
            if not isinstance(item, dict):
                continue
            text = _optional_text(item.get("text"))
            if text is None:
                continue
            choices.append(
                GeneratedChoice(
                    text=text,
                    consequence_hint=_optional_text(item.get("consequence_hint")),
                )
            )

    return GeneratedScene(
        narrative=narrative.strip(),
        decisions=choices[:MAX_DECISIONS_PER_SCENE],
        ending_summary=_optional_text(data.get("ending_summary")),
    )


def _parse_quality(value: Any) -> EndingQuality:
    try:
        return EndingQuality(str(value).strip().lower())
    except ValueError:
        return EndingQuality.NEUTRAL


def _fit_ending_plan(endings: list[PlannedEnding], config: DiamondConfig) -> list[PlannedEnding]:
    """Pad (cycling the plan) up to ``min_endings`` and cut at ``max_endings``."""
    fitted = list(endings) or [e.model_copy() for e in DEFAULT_PLANNED_ENDINGS]
    pool = list(fitted)
    while len(fitted) < config.min_endings:
        fitted.append(pool[len(fitted) % len(pool)].model_copy())
    return fitted[: config.max_endings]


def parse_world_rules(raw: Any, config: DiamondConfig | None = None) -> WorldRules:
    """Validate world builder output.

    ``setting`` is required; an object is accepted and kept as its JSON
    text. Characters need a name, everything else falls back to defaults.
    Ending qualities are matched case-insensitively (unknown -> neutral) and
    an empty ending plan is replaced by ``DEFAULT_PLANNED_ENDINGS``.

    With ``config`` the ending plan is also fitted to
    ``min_endings..max_endings``: short plans are padded by repeating their
    own entries (or the defaults), long ones are truncated.

    Raises:
        OutputValidationError: If ``setting`` is missing or blank.
    """
    data = _as_dict(raw, "WorldRules")

    setting = data.get("setting")
    if isinstance(setting, dict):
        setting = json.dumps(setting)
    if not isinstance(setting, str) or not setting.strip():
        raise OutputValidationError(
            "WorldRules", ['"setting" is required and must describe where/when the story happens']
        )

    characters: list[KeyCharacter] = []
    for item in data.get("key_characters") or []:
        if not isinstance(item, dict) or not _optional_text(item.get("name")):
            continue
        characters.append(
            KeyCharacter(
                name=str(item["name"]).strip(),
                role=_text_or(item.get("role"), "supporting"),
                relationship_to_player=_text_or(item.get("relationship_to_player"), "acquaintance"),
            )
        )

    rules = [str(rule).strip() for rule in data.get("rules") or [] if _optional_text(rule)]

    endings: list[PlannedEnding] = []
    for item in data.get("possible_endings") or []:
        if not isinstance(item, dict):
            continue
        endings.append(
            PlannedEnding(
                quality=_parse_quality(item.get("quality", "neutral")),
                condition=_text_or(item.get("condition"), "Through player choices"),
                summary=_text_or(item.get("summary"), "Story concludes"),
            )
        )

    if config is not None:
        endings = _fit_ending_plan(endings, config)
    elif not endings:
        endings = [e.model_copy() for e in DEFAULT_PLANNED_ENDINGS]

    return WorldRules(
        setting=setting.strip(),
        key_characters=characters,
        rules=rules,
        possible_endings=endings,
    )


def _parse_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    return min(10.0, max(0.0, score))


def parse_critic_evaluation(raw: Any) -> CriticEvaluation:
    """Validate critic output.

    ``decision`` is required and matched case-insensitively. Scores are
    clamped to 0-10, missing ones default to 7.

    Raises:
        OutputValidationError: If ``decision`` is missing or unknown.
    """
    data = _as_dict(raw, "CriticEvaluation")

    verdict = str(data.get("decision") or "").strip().upper()
    if verdict not in ("ACCEPT", "REWRITE", "REGENERATE"):
        raise OutputValidationError(
            "CriticEvaluation", ['"decision" must be one of ACCEPT, REWRITE, REGENERATE']
        )

    raw_quality = data.get("quality")
    scores = raw_quality if isinstance(raw_quality, dict) else {}
    quality = QualityScores(
        immersion=_parse_score(scores.get("immersion", DEFAULT_SCORE)),
        pacing=_parse_score(scores.get("pacing", DEFAULT_SCORE)),
        voice=_parse_score(scores.get("voice", DEFAULT_SCORE)),
        choices=_parse_score(scores.get("choices", DEFAULT_SCORE)),
    )

    return CriticEvaluation(
        decision=verdict,  # type: ignore[arg-type]
        edited_content=_optional_text(data.get("edited_content")),
        quality=quality,
        rewrite_instructions=_optional_text(data.get("rewrite_instructions")),
        regenerate_reason=_optional_text(data.get("regenerate_reason")),
        reason=_text_or(data.get("reason"), "Scene evaluated"),
    )
