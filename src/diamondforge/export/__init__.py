"""Story export and persistence."""

from diamondforge.export.base import Exporter, StoryExport, build_story_export, generate_title
from diamondforge.export.json_exporter import (
    JsonExporter,
    JsonStoryStore,
    StoryNotFoundError,
    read_story_export,
)

__all__ = [
    "Exporter",
    "JsonExporter",
    "JsonStoryStore",
    "StoryExport",
    "StoryNotFoundError",
    "build_story_export",
    "generate_title",
    "read_story_export",
]
