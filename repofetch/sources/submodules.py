"""Submodule update and remote branch override."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from repofetch.console import group
from repofetch.errors import CapabilityError
from repofetch.git.command import get_command_manager
from repofetch.sources.fetch import sync_ref

if TYPE_CHECKING:
    from repofetch.git.auth import GitAuthHelper
    from repofetch.git.command import GitCommandManager
    from repofetch.models.settings import AcquisitionSettings

logger = logging.getLogger(__name__)


async def update_submodules(
    git: GitCommandManager, auth: GitAuthHelper, settings: AcquisitionSettings
) -> list[str]:
    """Update submodules to the recorded commits.

    Returns the paths of the submodules switched to the remote branch, when
    ``submodules_remote_branch`` is set.
    """
    recursive = settings.nested_submodules
    switched: list[str] = []

    async with auth.global_auth():
        with group("Fetching submodules"):
            await git.submodule_sync(recursive)
            await git.submodule_update(settings.fetch_depth, recursive)
            await git.submodule_foreach("git config --local gc.auto 0", recursive)

        if settings.persist_credentials or settings.submodules_remote_branch:
            with group("Persisting credentials for submodules"):
                await auth.configure_submodule_auth()

        if settings.submodules_remote_branch:
            with group(f"Checking out submodules remote branch '{settings.submodules_remote_branch}'"):
                switched = await checkout_remote_branch(git, settings)

    return switched


async def checkout_remote_branch(
    git: GitCommandManager, settings: AcquisitionSettings
) -> list[str]:
    """Move each submodule that has the branch onto its remote tip.

    Submodules without the branch stay at the recorded commit.
    """
    branch = settings.submodules_remote_branch or ""
    switched: list[str] = []

    for submodule_path in await git.get_submodules_list():
        path = git.get_working_directory() / submodule_path
        try:
            submodule_git = await get_command_manager(path, settings.lfs)
        except CapabilityError as e:
            logger.debug(f"Skipping submodule '{submodule_path}': {e}")
            continue
        if submodule_git is None:
            logger.debug(f"Skipping submodule '{submodule_path}': no git client")
            continue

        # Same HOME and SSH command as the parent
        for name, value in git.environment.items():
            submodule_git.set_environment_variable(name, value)

        if not await submodule_git.remote_branch_exists(branch):
            logger.info(
                f"Branch '{branch}' not found in submodule '{submodule_path}', "
                "keeping the recorded commit"
            )
            continue

        logger.info(f"Checking out '{branch}' in submodule '{submodule_path}'")
        await sync_ref(
            submodule_git,
            branch,
            "",
            settings.fetch_depth,
            lfs=settings.lfs,
            skip_fetch=settings.full_history,
        )
        switched.append(submodule_path)

    return switched
