"""Acquisition driver.

Decides between the native git path and the archive download, and removes
credentials after the run when asked to.
"""

from __future__ import annotations

import logging
from pathlib import Path

from repofetch import fs
from repofetch.console import group
from repofetch.errors import CapabilityError
from repofetch.git.auth import GitAuthHelper
from repofetch.git.command import create_command_manager, get_command_manager
from repofetch.git.directory import prepare_existing_directory
from repofetch.models.result import AcquisitionResult
from repofetch.models.settings import AcquisitionSettings
from repofetch.providers.github import GitHubClient
from repofetch.sources.archive import ArchiveSourceHandler
from repofetch.sources.base import SourceHandler
from repofetch.sources.git import GitSourceHandler
from repofetch.state import StateStore, get_state_file
from repofetch.urls import get_api_url, get_fetch_url

logger = logging.getLogger(__name__)


async def get_source(
    settings: AcquisitionSettings,
    github: GitHubClient | None = None,
    state: StateStore | None = None,
) -> AcquisitionResult:
    """Populate ``settings.repository_path`` with the requested content.

    Args:
        settings: What to fetch and where to put it
        github: REST client; one is created (and closed) when not given
        state: State store for the cleanup run

    Raises:
        AcquisitionError: On any failure; see :mod:`repofetch.errors`
    """
    logger.info(f"Syncing repository: {settings.qualified_repository}")
    repository_path = settings.repository_path
    repository_url = get_fetch_url(settings)
    state = state or StateStore(get_state_file(settings.temp_dir))

    # A file or dangling symlink occupying the path is replaced by the directory
    if fs.existence(repository_path) and not fs.directory_exists(repository_path):
        fs.remove(repository_path)

    is_existing = True
    if not fs.directory_exists(repository_path):
        is_existing = False
        fs.make_directory(repository_path)

    with group("Getting Git version info"):
        git = await get_command_manager(repository_path, settings.lfs)

    if is_existing:
        await prepare_existing_directory(
            git, repository_path, repository_url, settings.clean, settings.ref
        )

    owns_client = github is None
    if github is None:
        github = GitHubClient(get_api_url(settings), settings.auth_token, settings.temp_dir)

    handler: SourceHandler
    if git is None:
        handler = ArchiveSourceHandler(settings, github)
    else:
        handler = GitSourceHandler(settings, github, git, state)

    try:
        return await handler.sync()
    finally:
        if owns_client:
            await github.close()


async def cleanup(
    repository_path: Path | None = None,
    state: StateStore | None = None,
    temp_dir: Path | None = None,
) -> bool:
    """Remove credentials left by an earlier run.

    The state file is looked up under ``temp_dir``, the directory the
    acquisition used, or under RUNNER_TEMP when not given.

    Returns:
        True if credentials were removed, False if there was nothing to do
    """
    state = state or StateStore(get_state_file(temp_dir))
    repository_path = repository_path or state.repository_path
    if repository_path is None:
        logger.debug("No repository path recorded, nothing to clean up")
        return False

    if not fs.file_exists(repository_path / ".git" / "config"):
        logger.debug(f"No git config found in '{repository_path}'")
        return False

    try:
        git = await create_command_manager(repository_path)
    except CapabilityError as e:
        logger.debug(f"Skipping cleanup: {e}")
        return False

    auth = GitAuthHelper(git, state=state, server_url=state.get("server_url"))
    with group("Removing auth"):
        await auth.remove_auth()
    return True
