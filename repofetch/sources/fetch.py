"""Fetch and checkout steps shared by the repository and its submodules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from repofetch.console import group
from repofetch.git.refs import (
    get_checkout_info,
    get_ref_spec,
    get_ref_spec_for_all_history,
    verify_ref,
)

if TYPE_CHECKING:
    from repofetch.git.command import GitCommandManager
    from repofetch.models.refs import CheckoutInfo

logger = logging.getLogger(__name__)


async def fetch_ref(git: GitCommandManager, ref: str, commit: str, fetch_depth: int) -> None:
    """Fetch what is needed to check out ``ref``/``commit``.

    A shallow fetch uses one targeted refspec. A full-history fetch takes
    every branch and tag, then verifies the requested ref; if the ref moved
    on the remote in between, one targeted fetch corrects it.
    """
    with group("Fetching the repository"):
        if fetch_depth > 0:
            await git.fetch(get_ref_spec(ref, commit), fetch_depth)
            return

        await git.fetch(get_ref_spec_for_all_history(ref, commit))
        if not await verify_ref(git, ref, commit):
            logger.info(f"Ref '{ref}' does not point at {commit}, fetching it directly")
            await git.fetch(get_ref_spec(ref, commit))


async def checkout_ref(git: GitCommandManager, ref: str, commit: str, lfs: bool) -> CheckoutInfo:
    with group("Determining the checkout info"):
        checkout_info = await get_checkout_info(git, ref, commit)

    if lfs:
        with group("Fetching LFS objects"):
            await git.lfs_fetch(checkout_info.target)

    with group("Checking out the ref"):
        await git.checkout(checkout_info.ref, checkout_info.start_point)
    return checkout_info


async def sync_ref(
    git: GitCommandManager,
    ref: str,
    commit: str,
    fetch_depth: int,
    lfs: bool = False,
    skip_fetch: bool = False,
) -> CheckoutInfo:
    """Fetch (unless ``skip_fetch``) and check out ``ref``/``commit``."""
    if lfs:
        with group("Initializing Git LFS"):
            await git.lfs_install()

    if not skip_fetch:
        await fetch_ref(git, ref, commit, fetch_depth)

    return await checkout_ref(git, ref, commit, lfs)
