"""Reuse or recreate an existing repository directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from repofetch import fs
from repofetch.console import group

if TYPE_CHECKING:
    from repofetch.git.command import GitCommandManager

logger = logging.getLogger(__name__)

LOCK_FILES = ("index.lock", "shallow.lock")


async def prepare_existing_directory(
    git: GitCommandManager | None,
    repository_path: Path,
    repository_url: str,
    clean: bool,
    ref: str,
) -> None:
    """Make an existing directory ready for a fetch.

    The directory contents are deleted when the repository cannot be
    reused: no git client, no ``.git`` directory, a different remote URL,
    broken submodules, or a clean/reset failure while ``clean`` is set.
    """
    remove = False

    if git is None:
        remove = True
    elif (
        not fs.directory_exists(repository_path / ".git")
        or repository_url != await git.try_get_fetch_url()
    ):
        remove = True
    else:
        # Locks left by a canceled run or a crashed git process
        for lock_name in LOCK_FILES:
            lock_path = repository_path / ".git" / lock_name
            try:
                fs.remove(lock_path)
            except OSError as e:
                logger.debug(f"Unable to delete '{lock_path}': {e}")

        try:
            with group("Removing previously created refs, to avoid conflicts"):
                if not await git.is_detached():
                    await git.checkout_detach()

                for branch in await git.branch_list(False):
                    await git.branch_delete(False, branch)

                await _remove_conflicting_remote_branches(git, ref)

            if not await git.submodule_status():
                remove = True
                logger.info("Bad Submodules found, removing existing files")

            if clean and not remove:
                with group("Cleaning the repository"):
                    if not await git.try_clean():
                        logger.debug(
                            "The clean command failed. This might be caused by: "
                            "1) path too long, 2) permission issue, or 3) file in use."
                        )
                        remove = True
                    elif not await git.try_reset():
                        remove = True

                if remove:
                    logger.warning(
                        "Unable to clean or reset the repository. "
                        "The repository will be recreated instead."
                    )
        except Exception as e:
            logger.debug(str(e))
            logger.warning(
                "Unable to prepare the existing repository. "
                "The repository will be recreated instead."
            )
            remove = True

    if remove:
        logger.info(f"Deleting the contents of '{repository_path}'")
        fs.empty_directory(repository_path)


async def _remove_conflicting_remote_branches(git: GitCommandManager, ref: str) -> None:
    """Delete ``origin/*`` branches whose names nest with the requested branch.

    ``refs/heads/foo`` conflicts with a previously fetched ``origin/foo/bar``
    and ``refs/heads/foo/bar`` with ``origin/foo``.
    """
    if not ref:
        return
    ref = ref if ref.startswith("refs/") else f"refs/heads/{ref}"
    if not ref.startswith("refs/heads/"):
        return

    name1 = ref[len("refs/heads/") :].upper()
    for branch in await git.branch_list(True):
        name2 = branch[len("origin/") :].upper()
        if name1.startswith(f"{name2}/") or name2.startswith(f"{name1}/"):
            await git.branch_delete(True, branch)
