"""In-process story job runner.

Jobs are submitted with a ``StoryRequest`` and run as asyncio tasks. At most
``max_concurrency`` runs generate at once; the rest wait on a semaphore in
``queued`` state. Each run owns its own ``GenerationState``. A finished
story is handed to the store; a failed one is recorded and nothing is saved.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field

from diamondforge.models.story import (
    Difficulty,
    GenerationMode,
    Genre,
    PlayerCustomization,
    Tone,
    create_generation_state,
)
from diamondforge.observability.logging import bind_run_context, clear_run_context, get_logger
from diamondforge.pipeline.config import DEFAULT_MAX_CONCURRENCY
from diamondforge.pipeline.orchestrator import DiamondOrchestrator
from diamondforge.pipeline.presets import DEFAULT_PRESET, get_diamond_preset

if TYPE_CHECKING:
    from diamondforge.agents.critic import SceneCritic
    from diamondforge.models.story import GenerationState
    from diamondforge.pipeline.config import ProjectConfig
    from diamondforge.providers.base import StructuredGenerator

log = get_logger(__name__)

# Finished records kept for get_status; older ones are dropped first.
DEFAULT_MAX_FINISHED_JOBS = 100


class JobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StoryRequest(BaseModel):
    """Everything needed to start one story run."""

    genre: Genre
    premise: str = Field(min_length=1)
    player_name: str = Field(min_length=1, max_length=50)
    player_gender: str = "neutral"
    player_personality: str | None = None
    tone: Tone = Tone.BALANCED
    difficulty: Difficulty = Difficulty.NORMAL
    preset: str = DEFAULT_PRESET
    mode: GenerationMode = GenerationMode.DRAFT
    seed: int | None = None

    def to_state(self) -> GenerationState:
        """Create the fresh generation state for this request.

        Raises:
            ValueError: If the preset or player fields are invalid.
        """
        return create_generation_state(
            genre=self.genre,
            premise=self.premise,
            player=PlayerCustomization(
                name=self.player_name,
                gender=self.player_gender,
                personality=self.player_personality,
            ),
            diamond_config=get_diamond_preset(self.preset),
            tone=self.tone,
            difficulty=self.difficulty,
            preset=self.preset,
        )


@dataclass
class JobRecord:
    """Status of one submitted job."""

    job_id: str
    request: StoryRequest
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    message: str = "Queued"
    story_id: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobNotFoundError(Exception):
    """Raised when a job id is unknown to the runner."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class StoryStore(Protocol):
    """Where finished stories go."""

    def save(self, state: GenerationState) -> str:
        """Persist ``state`` and return its story id."""
        ...


class StoryJobRunner:
    """Runs story jobs concurrently with bounded parallelism.

    Args:
        generator_factory: Returns the generation collaborator for a job.
        store: Receives every successfully generated story.
        max_concurrency: Maximum runs generating at the same time.
        critic_factory: Optional critic per job; defaults to an
            ``EditorCritic`` over the job's generator.
        max_finished_jobs: Finished jobs remembered before the oldest are
            forgotten.
    """

    def __init__(
        self,
        generator_factory: Callable[[], StructuredGenerator],
        store: StoryStore,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        critic_factory: Callable[[StructuredGenerator], SceneCritic] | None = None,
        max_finished_jobs: int = DEFAULT_MAX_FINISHED_JOBS,
    ) -> None:
        self._generator_factory = generator_factory
        self._critic_factory = critic_factory
        self._store = store
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._max_finished_jobs = max(1, max_finished_jobs)
        self._jobs: dict[str, JobRecord] = {}
        self._tasks: dict[str, asyncio.Task[Exception | None]] = {}

    @classmethod
    def from_config(
        cls,
        config: ProjectConfig,
        generator_factory: Callable[[], StructuredGenerator],
        store: StoryStore,
        critic_factory: Callable[[StructuredGenerator], SceneCritic] | None = None,
    ) -> StoryJobRunner:
        """Runner sized by ``generation.max_concurrency`` of a project."""
        return cls(
            generator_factory,
            store,
            max_concurrency=config.generation.max_concurrency,
            critic_factory=critic_factory,
        )

    def submit(self, request: StoryRequest) -> str:
        """Queue a job and return its id. Must be called inside a running loop."""
        job_id = str(uuid.uuid4())
        self._jobs[job_id] = JobRecord(job_id=job_id, request=request)
        self._tasks[job_id] = asyncio.create_task(self._run(job_id))
        log.info("job_submitted", job_id=job_id, genre=str(request.genre), preset=request.preset)
        return job_id

    def get_status(self, job_id: str) -> JobRecord:
        """Current record of a job.

        Raises:
            JobNotFoundError: If the id was never submitted.
        """
        if job_id not in self._jobs:
            raise JobNotFoundError(job_id)
        return self._jobs[job_id]

    def list_jobs(self) -> list[JobRecord]:
        return sorted(self._jobs.values(), key=lambda record: record.created_at)

    async def wait(self, job_id: str) -> JobRecord:
        """Wait for a job to finish.

        Raises:
            JobNotFoundError: If the id was never submitted.
            Exception: The error that failed the job, re-raised.
        """
        record = self.get_status(job_id)
        failure = await self._tasks[job_id]
        if failure is not None:
            raise failure
        return record

    def _update_progress(self, job_id: str, percent: int, message: str) -> None:
        record = self._jobs[job_id]
        record.progress = percent
        record.message = message

    def _evict_finished(self) -> None:
        finished = sorted(
            (r for r in self._jobs.values() if r.is_finished and r.finished_at is not None),
            key=lambda r: r.finished_at,  # type: ignore[arg-type,return-value]
        )
        for record in finished[: max(0, len(finished) - self._max_finished_jobs)]:
            del self._jobs[record.job_id]
            self._tasks.pop(record.job_id, None)
            log.debug("job_evicted", job_id=record.job_id)

    async def _run(self, job_id: str) -> Exception | None:
        record = self._jobs[job_id]
        failure: Exception | None = None
        async with self._semaphore:
            record.status = JobStatus.RUNNING
            record.message = "Starting"
            bind_run_context(job_id=job_id)
            try:
                request = record.request
                state = request.to_state()
                generator = self._generator_factory()
                critic = self._critic_factory(generator) if self._critic_factory else None
                orchestrator = DiamondOrchestrator(
                    generator,
                    critic,
                    on_progress=lambda percent, message: self._update_progress(job_id, percent, message),
                    seed=request.seed,
                )
                await orchestrator.run(state, request.mode)
                record.story_id = self._store.save(state)
                record.status = JobStatus.SUCCEEDED
                record.progress = 100
                record.message = "Story complete!"
                log.info("job_succeeded", job_id=job_id, story_id=record.story_id)
            except Exception as e:
                record.status = JobStatus.FAILED
                record.error = f"{type(e).__name__}: {e}"
                failure = e
                log.error("job_failed", job_id=job_id, error=record.error)
            finally:
                record.finished_at = datetime.now(UTC)
                clear_run_context("job_id")
        self._evict_finished()
        return failure
