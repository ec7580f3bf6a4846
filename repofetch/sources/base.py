"""Base source handler interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repofetch.models.result import AcquisitionResult
    from repofetch.models.settings import AcquisitionSettings
    from repofetch.providers.github import GitHubClient


class SourceHandler(ABC):
    """Abstract base class for the ways a working copy can be obtained."""

    def __init__(self, settings: AcquisitionSettings, github: GitHubClient) -> None:
        self.settings = settings
        self.github = github
        self.repository_path = settings.repository_path

    @abstractmethod
    async def sync(self) -> AcquisitionResult:
        """Populate the repository directory."""
        ...
