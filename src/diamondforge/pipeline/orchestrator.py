"""Story run controller and level orchestrator.

A run builds the world once, generates the diamond level by level, wires
each finished level's decisions to the next, and ends with a repair pass
over the whole graph. Levels and the scenes within a level are generated
strictly in order; concurrency happens between runs, not inside one.
"""

from __future__ import annotations

import asyncio
import inspect
import math
import random
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from diamondforge.agents.critic import EditorCritic
from diamondforge.agents.prompts import build_world_rules_prompt
from diamondforge.diamond.connect import connect_decisions
from diamondforge.diamond.shape import calculate_diamond_shape, scene_id, total_scene_count
from diamondforge.diamond.topology import resolve_incoming_scenes
from diamondforge.diamond.validation import validate_paths
from diamondforge.models.generation import OutputValidationError, parse_world_rules
from diamondforge.models.story import EndingQuality, GenerationMode, SceneType, WorldRules
from diamondforge.observability.logging import bind_run_context, clear_run_context, get_logger
from diamondforge.observability.tracing import generate_run_id, set_run_id, traceable
from diamondforge.pipeline.synthesizer import SceneRequest, SceneSynthesizer

if TYPE_CHECKING:
    from diamondforge.agents.critic import SceneCritic
    from diamondforge.diamond.validation import PathValidationReport
    from diamondforge.models.story import GenerationState
    from diamondforge.prompts.compiler import PromptCompiler
    from diamondforge.providers.base import StructuredGenerator

log = get_logger(__name__)

ProgressFn = Callable[[int, str], Awaitable[None] | None]

WORLD_RULES_ATTEMPTS = 3


class WorldBuildingError(Exception):
    """World rules could not be produced within the attempt budget."""

    def __init__(self, attempts: int, reason: str) -> None:
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"World building failed after {attempts} attempts: {reason}")


def level_progress(level: int, max_levels: int) -> int:
    """Progress percentage reported when ``level`` starts."""
    return 10 + math.floor(level / max_levels * 80)


class DiamondOrchestrator:
    """Generates a complete story graph into a ``GenerationState``.

    Args:
        generator: Collaborator for world rules and scene drafts.
        critic: Scene critic. Defaults to an ``EditorCritic`` over ``generator``.
        on_progress: Optional ``(percent, message)`` callback, sync or async.
            Coroutine functions are scheduled as tasks and never awaited by
            the run. Plain functions run inline between steps, so they must
            return quickly; slow consumers should pass a coroutine function.
            Failures are logged either way.
        rng: Randomness for secondary topology links.
        seed: Seed for a fresh ``random.Random`` when ``rng`` is not given.
        compiler: Prompt compiler; defaults to the packaged templates.
    """

    def __init__(
        self,
        generator: StructuredGenerator,
        critic: SceneCritic | None = None,
        *,
        on_progress: ProgressFn | None = None,
        rng: random.Random | None = None,
        seed: int | None = None,
        compiler: PromptCompiler | None = None,
    ) -> None:
        self._generator = generator
        self._critic = critic or EditorCritic(generator, compiler)
        self._on_progress = on_progress
        self._rng = rng or random.Random(seed)
        self._compiler = compiler
        self._synthesizer: SceneSynthesizer | None = None
        self._progress_tasks: set[asyncio.Future[None]] = set()
        self.last_report: PathValidationReport | None = None

    @traceable("diamond_run")
    async def run(
        self,
        state: GenerationState,
        mode: GenerationMode = GenerationMode.DRAFT,
    ) -> GenerationState:
        """Generate every level of ``state`` and validate the result.

        Args:
            state: Fresh state from ``create_generation_state``. Filled in place.
            mode: Draft or polished generation.

        Returns:
            The same state, complete.

        Raises:
            ProviderError: If a collaborator call fails. The state is partial
                and should be discarded.
            WorldBuildingError: If world rules never validated.
            SceneSynthesisError: If a scene never produced a usable draft.
        """
        run_id = generate_run_id()
        set_run_id(run_id)
        bind_run_context(run_id=run_id)
        start = time.perf_counter()
        self._synthesizer = SceneSynthesizer(
            self._generator, self._critic, mode=mode, compiler=self._compiler
        )
        config = state.diamond_config
        label = "Polished" if mode == GenerationMode.POLISHED else "Draft"

        try:
            log.info("run_started", genre=str(state.genre), preset=state.preset, mode=str(mode))

            self._report(5, f"Building story world... ({label} mode)")
            if state.world_rules is None:
                state.world_rules = await self.generate_world_rules(state)

            self._report(10, "Planning story branches...")
            shape = calculate_diamond_shape(config)
            log.info("diamond_planned", shape=shape, total_scenes=total_scene_count(shape))

            for level in range(config.max_levels):
                is_last = level == state.last_level
                self._report(
                    level_progress(level, config.max_levels),
                    "Writing endings..." if is_last else f"Writing level {level + 1}...",
                )
                state.current_level = level
                await self.generate_level(state, level, shape)

            self._report(95, "Validating story paths...")
            self.last_report = validate_paths(state)

            self._report(100, "Complete!")
            log.info(
                "run_completed",
                scenes=state.scenes_generated,
                words=state.total_words,
                endings=state.ending_count(),
                repairs=self.last_report.summary,
                duration_seconds=round(time.perf_counter() - start, 2),
            )
            return state
        finally:
            clear_run_context("run_id")

    async def generate_world_rules(self, state: GenerationState) -> WorldRules:
        """Ask for the story world, retrying unreadable responses.

        Raises:
            WorldBuildingError: If every attempt failed validation.
        """
        prompt = build_world_rules_prompt(state, self._compiler)
        user_prompt = prompt.user
        last_error: OutputValidationError | None = None

        for attempt in range(1, WORLD_RULES_ATTEMPTS + 1):
            try:
                raw = await self._generator.generate(prompt.system, user_prompt, WorldRules)
                world = parse_world_rules(raw, state.diamond_config)
            except OutputValidationError as e:
                last_error = e
                log.warning("world_rules_invalid", attempt=attempt, errors=e.errors)
                user_prompt = f"{prompt.user}\n\n{e.to_feedback()}"
                continue

            log.info(
                "world_rules_generated",
                characters=len(world.key_characters),
                rules=len(world.rules),
                endings=len(world.possible_endings),
            )
            return world

        raise WorldBuildingError(WORLD_RULES_ATTEMPTS, str(last_error)) from last_error

    async def generate_level(self, state: GenerationState, level: int, shape: list[int]) -> None:
        """Generate all scenes of ``level`` and connect the level above to it."""
        if self._synthesizer is None:
            self._synthesizer = SceneSynthesizer(
                self._generator, self._critic, compiler=self._compiler
            )

        count = shape[level]
        previous_ids = list(state.scenes_by_level[level - 1]) if level > 0 else []
        is_last = level == state.last_level
        endings = state.world_rules.possible_endings if state.world_rules else []

        for index in range(count):
            sid = scene_id(level, index)
            incoming = resolve_incoming_scenes(
                level, index, count, previous_ids, state.diamond_config, self._rng
            )
            if level == 0:
                scene_type = SceneType.INTRO
            elif is_last:
                scene_type = SceneType.ENDING
            else:
                scene_type = SceneType.BRANCH

            request = SceneRequest(scene_id=sid, scene_type=scene_type, level=level, incoming_ids=incoming)
            if is_last and endings:
                planned = endings[len(state.scenes_by_level[level]) % len(endings)]
                request.ending_quality = planned.quality
                request.ending_summary = planned.summary
            elif is_last:
                request.ending_quality = EndingQuality.NEUTRAL

            scene = await self._synthesizer.synthesize(state, request)
            state.scenes[sid] = scene
            state.scenes_by_level[level].append(sid)
            state.scenes_generated += 1
            state.total_words += scene.word_count

        if level > 0:
            connect_decisions(state, level)
        log.info("level_generated", level=level, scenes=count)

    def _report(self, percent: int, message: str) -> None:
        if self._on_progress is None:
            return
        try:
            result = self._on_progress(percent, message)
        except Exception as e:
            log.warning("progress_callback_failed", percent=percent, error=str(e))
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._progress_tasks.add(task)
            task.add_done_callback(self._progress_done)

    def _progress_done(self, task: asyncio.Future[None]) -> None:
        self._progress_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.warning("progress_callback_failed", error=str(task.exception()))
