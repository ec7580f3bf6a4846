"""Source handlers for obtaining a working copy."""

from repofetch.sources.archive import ArchiveSourceHandler
from repofetch.sources.base import SourceHandler
from repofetch.sources.git import GitSourceHandler

__all__ = ["ArchiveSourceHandler", "GitSourceHandler", "SourceHandler"]
