"""Archive source handler: tarball download through the REST API."""

from __future__ import annotations

import logging

from repofetch.console import group
from repofetch.errors import ConfigurationConflictError
from repofetch.models.result import AcquisitionMethod, AcquisitionResult
from repofetch.sources.base import SourceHandler

logger = logging.getLogger(__name__)

FALLBACK_METHOD = "downloading using the GitHub REST API"
FALLBACK_HINT = "To create a local Git repository instead, add Git 2.18 or higher to the PATH."


class ArchiveSourceHandler(SourceHandler):
    """Downloads a snapshot when no usable git client is installed.

    The snapshot has no history, so options that need a repository are
    rejected before anything is downloaded.
    """

    def check_supported(self) -> None:
        if self.settings.fetch_submodules:
            raise ConfigurationConflictError("submodules", FALLBACK_METHOD, FALLBACK_HINT)
        if self.settings.ssh_key:
            raise ConfigurationConflictError("ssh-key", FALLBACK_METHOD, FALLBACK_HINT)

    async def sync(self) -> AcquisitionResult:
        self.check_supported()

        logger.info("The repository will be downloaded using the GitHub REST API")
        with group("Downloading the repository"):
            await self.github.download_repository(
                self.settings.repository_owner,
                self.settings.repository_name,
                self.settings.ref,
                self.settings.commit,
                self.repository_path,
            )

        return AcquisitionResult(
            method=AcquisitionMethod.ARCHIVE,
            repository=self.settings.qualified_repository,
            repository_path=self.repository_path,
            ref=self.settings.ref,
            commit=self.settings.commit,
        )
