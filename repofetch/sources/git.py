"""Git source handler: native client acquisition."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from repofetch import fs
from repofetch.console import group
from repofetch.git.auth import GitAuthHelper, credentials
from repofetch.git.refs import check_commit_info, needs_default_branch
from repofetch.models.refs import COMMIT_INFO_FORMAT, CommitInfo
from repofetch.models.result import AcquisitionMethod, AcquisitionResult
from repofetch.sources.base import SourceHandler
from repofetch.sources.fetch import sync_ref
from repofetch.sources.submodules import update_submodules
from repofetch.state import StateStore
from repofetch.urls import get_fetch_url, get_server_url

if TYPE_CHECKING:
    from repofetch.git.command import GitCommandManager
    from repofetch.models.settings import AcquisitionSettings
    from repofetch.providers.github import GitHubClient

logger = logging.getLogger(__name__)


class GitSourceHandler(SourceHandler):
    """Fetches the repository with the installed git client."""

    def __init__(
        self,
        settings: AcquisitionSettings,
        github: GitHubClient,
        git: GitCommandManager,
        state: StateStore | None = None,
    ) -> None:
        super().__init__(settings, github)
        self.git = git
        self.state = state or StateStore()
        self.repository_url = get_fetch_url(settings)

    async def sync(self) -> AcquisitionResult:
        git = self.git
        settings = self.settings

        # Consulted by the cleanup run
        self.state.set_repository_path(self.repository_path)
        self.state.set("server_url", get_server_url(settings))

        if not fs.directory_exists(self.repository_path / ".git"):
            with group("Initializing the repository"):
                await git.init()
                await git.remote_add("origin", self.repository_url)

        with group("Disabling automatic garbage collection"):
            if not await git.try_disable_automatic_garbage_collection():
                logger.warning("Unable to turn off git automatic garbage collection.")

        auth = GitAuthHelper(git, settings, self.state)
        submodules_updated: list[str] = []
        async with credentials(auth, settings.persist_credentials):
            settings = await self.resolve_default_branch(settings)
            # Later steps see the resolved ref
            auth.settings = settings

            await sync_ref(
                git, settings.ref, settings.commit, settings.fetch_depth, lfs=settings.lfs
            )

            if settings.fetch_submodules:
                submodules_updated = await update_submodules(git, auth, settings)

            commit_info = CommitInfo.parse(await git.log1(COMMIT_INFO_FORMAT))
            logger.info(f"Checked out commit {commit_info.sha}")
            check_commit_info(
                commit_info,
                settings.ref,
                settings.commit,
                settings.pull_request_head_sha,
            )

        self.settings = settings
        return AcquisitionResult(
            method=AcquisitionMethod.GIT,
            repository=settings.qualified_repository,
            repository_path=self.repository_path,
            ref=settings.ref,
            commit=commit_info.sha,
            submodules_updated=submodules_updated,
        )

    async def resolve_default_branch(self, settings: AcquisitionSettings) -> AcquisitionSettings:
        """Point ``settings`` at the default branch when the requested ref is unusable."""
        if not await needs_default_branch(self.git, settings.ref, settings.commit):
            return settings

        with group("Determining the default branch"):
            if settings.ssh_key:
                ref = await self.git.get_default_branch(self.repository_url)
            else:
                ref = await self.github.get_default_branch(
                    settings.repository_owner, settings.repository_name
                )
        if settings.ref:
            logger.info(f"Using default branch '{ref}' instead of '{settings.ref}'")
        return settings.with_ref(ref)
