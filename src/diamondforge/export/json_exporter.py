"""JSON export and a file-backed story store.

Stories are written as a single ``story.json``. ``JsonStoryStore`` keeps
one directory per story id under a root directory.
"""

from __future__ import annotations

import uuid
from pathlib import Path

from pydantic import ValidationError

from diamondforge.export.base import StoryExport, build_story_export
from diamondforge.models.story import GenerationState  # noqa: TC001 - used in signatures at runtime
from diamondforge.observability.logging import get_logger

log = get_logger(__name__)

STORY_FILE_NAME = "story.json"


class StoryNotFoundError(Exception):
    """Raised when a story id or file does not exist or cannot be read."""

    def __init__(self, story_id: str, reason: str = "not found") -> None:
        self.story_id = story_id
        self.reason = reason
        super().__init__(f"Story {story_id}: {reason}")


class JsonExporter:
    """Export a story as formatted JSON."""

    format_name = "json"

    def export(self, story: StoryExport, output_dir: Path) -> Path:
        """Write ``story`` to ``output_dir/story.json``.

        Returns:
            Path to the written file.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        output_file = output_dir / STORY_FILE_NAME
        output_file.write_text(story.model_dump_json(indent=2), encoding="utf-8")
        log.debug("story_exported", path=str(output_file), scenes=story.total_scenes)
        return output_file


def read_story_export(path: Path) -> StoryExport:
    """Read a ``story.json`` written by ``JsonExporter``.

    Raises:
        StoryNotFoundError: If the file is missing or not a valid export.
    """
    if not path.exists():
        raise StoryNotFoundError(str(path))
    try:
        return StoryExport.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise StoryNotFoundError(str(path), f"invalid story file ({e.error_count()} errors)") from e


class JsonStoryStore:
    """Saves finished stories as ``{root}/{story_id}/story.json``.

    Args:
        root: Directory holding one subdirectory per story.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._exporter = JsonExporter()

    def save(self, state: GenerationState) -> str:
        """Persist a finished state and return its new story id."""
        story_id = uuid.uuid4().hex
        path = self._exporter.export(build_story_export(state), self.root / story_id)
        log.info("story_saved", story_id=story_id, path=str(path))
        return story_id

    def load_export(self, story_id: str) -> StoryExport:
        """Read the stored export of a story.

        Raises:
            StoryNotFoundError: If the story does not exist.
        """
        return read_story_export(self.root / story_id / STORY_FILE_NAME)

    def load(self, story_id: str) -> GenerationState:
        """Rebuild the generation state of a stored story.

        Raises:
            StoryNotFoundError: If the story does not exist.
        """
        return self.load_export(story_id).to_state()

    def list_ids(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(p.parent.name for p in self.root.glob(f"*/{STORY_FILE_NAME}"))
