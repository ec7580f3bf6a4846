"""Ref resolution: refspecs, checkout targets and commit validation."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from repofetch.errors import ConfigurationError, RefNotFoundError, VerificationError
from repofetch.models.refs import CheckoutInfo, CommitInfo

if TYPE_CHECKING:
    from repofetch.git.command import GitCommandManager

logger = logging.getLogger(__name__)

TAGS_REF_SPEC = "+refs/tags/*:refs/tags/*"
HEADS_REF_SPEC = "+refs/heads/*:refs/remotes/origin/*"

_SHA_PATTERN = re.compile(r"^[0-9a-fA-F]{7,40}$")
_MERGE_SUBJECT = re.compile(r"Merge ([0-9a-f]{40}) into ([0-9a-f]{40})")


def _has_prefix(ref: str, prefix: str) -> bool:
    return ref.upper().startswith(prefix.upper())


def is_branch_ref(ref: str) -> bool:
    return _has_prefix(ref, "refs/heads/")


def is_pull_ref(ref: str) -> bool:
    return _has_prefix(ref, "refs/pull/")


def is_tag_ref(ref: str) -> bool:
    return _has_prefix(ref, "refs/tags/")


def looks_like_sha(ref: str) -> bool:
    return bool(_SHA_PATTERN.match(ref))


async def get_checkout_info(
    git: GitCommandManager, ref: str, commit: str
) -> CheckoutInfo:
    """Turn a ref/commit pair into the arguments of ``git checkout``.

    Raises:
        ValueError: If neither ref nor commit is given
        RefNotFoundError: If an unqualified ref is neither a branch nor a tag
    """
    if not ref and not commit:
        raise ValueError("Args ref and commit cannot both be empty")

    # SHA only
    if not ref:
        return CheckoutInfo(ref=commit)

    if is_branch_ref(ref):
        branch = ref[len("refs/heads/") :]
        return CheckoutInfo(ref=branch, start_point=f"refs/remotes/origin/{branch}")

    if is_pull_ref(ref):
        branch = ref[len("refs/pull/") :]
        return CheckoutInfo(ref=f"refs/remotes/pull/{branch}")

    if _has_prefix(ref, "refs/"):
        return CheckoutInfo(ref=ref)

    # Unqualified ref, check for a matching branch or tag
    if await git.branch_exists(True, f"origin/{ref}"):
        return CheckoutInfo(ref=ref, start_point=f"refs/remotes/origin/{ref}")
    if await git.tag_exists(ref):
        return CheckoutInfo(ref=f"refs/tags/{ref}")

    raise RefNotFoundError(ref)


def get_ref_spec_for_all_history(ref: str, commit: str) -> list[str]:
    """Refspecs fetching every branch and tag, plus the pull request ref if any."""
    result = [HEADS_REF_SPEC, TAGS_REF_SPEC]
    if ref and is_pull_ref(ref):
        branch = ref[len("refs/pull/") :]
        result.append(f"+{commit or ref}:refs/remotes/pull/{branch}")
    return result


def get_ref_spec(ref: str, commit: str) -> list[str]:
    """Refspecs fetching only what is needed for ``ref``/``commit``."""
    if not ref and not commit:
        raise ValueError("Args ref and commit cannot both be empty")

    if commit:
        if is_branch_ref(ref):
            branch = ref[len("refs/heads/") :]
            return [f"+{commit}:refs/remotes/origin/{branch}"]
        if is_pull_ref(ref):
            branch = ref[len("refs/pull/") :]
            return [f"+{commit}:refs/remotes/pull/{branch}"]
        if is_tag_ref(ref):
            return [f"+{commit}:{ref}"]
        return [commit]

    # Unqualified
    if not _has_prefix(ref, "refs/"):
        return [
            f"+refs/heads/{ref}*:refs/remotes/origin/{ref}*",
            f"+refs/tags/{ref}*:refs/tags/{ref}*",
        ]
    if is_branch_ref(ref):
        branch = ref[len("refs/heads/") :]
        return [f"+{ref}:refs/remotes/origin/{branch}"]
    if is_pull_ref(ref):
        branch = ref[len("refs/pull/") :]
        return [f"+{ref}:refs/remotes/pull/{branch}"]
    return [f"+{ref}:{ref}"]


async def verify_ref(git: GitCommandManager, ref: str, commit: str) -> bool:
    """Check that the fetched ``ref`` still points at ``commit``.

    A ref that moved on the remote between a blanket fetch and this check
    yields False, so the caller can fetch again with a targeted refspec.
    """
    if not ref and not commit:
        raise ValueError("Args ref and commit cannot both be empty")

    # No SHA, nothing to test
    if not commit:
        return True

    if not ref:
        return await git.sha_exists(commit)

    if is_branch_ref(ref):
        branch = ref[len("refs/heads/") :]
        return await git.branch_exists(True, f"origin/{branch}") and commit == (
            await git.rev_parse(f"refs/remotes/origin/{branch}")
        )

    # Fetched using the commit, assume it matches
    if is_pull_ref(ref):
        return True

    if is_tag_ref(ref):
        tag_name = ref[len("refs/tags/") :]
        return await git.tag_exists(tag_name) and commit == (await git.rev_parse(ref))

    logger.debug(f"Unexpected ref format '{ref}' when testing ref info")
    return True


async def needs_default_branch(git: GitCommandManager, ref: str, commit: str) -> bool:
    """Decide whether the remote's default branch must replace ``ref``.

    Only an empty request, or a ref that matches nothing on the remote,
    falls back to the default branch. Tags are never replaced.

    Raises:
        ConfigurationError: If an abbreviated SHA names no branch or tag
    """
    if commit:
        return False
    if not ref:
        return True
    if await git.remote_branch_exists(ref):
        return False
    if is_tag_ref(ref) or is_pull_ref(ref):
        return False
    if is_branch_ref(ref):
        return True
    if await git.remote_tag_exists(ref):
        return False
    if looks_like_sha(ref):
        # Abbreviated SHAs cannot be fetched, only full ones
        raise ConfigurationError(
            f"Ref '{ref}' is neither a branch nor a tag on the remote. "
            "Pass the full commit SHA to check out a commit."
        )
    logger.info(f"Ref '{ref}' was not found on the remote")
    return True


def check_commit_info(
    commit_info: CommitInfo,
    ref: str,
    commit: str = "",
    expected_head_sha: str | None = None,
) -> None:
    """Detect a stale pull request merge commit.

    A ``refs/pull/*`` merge ref can lag behind the pull request head. When
    the checked-out merge commit carries a different head than expected, a
    :class:`VerificationError` is raised instead of building the wrong
    content.
    """
    if not ref or not is_pull_ref(ref):
        return
    if not expected_head_sha:
        logger.debug("Expected head sha unknown, skipping merge commit validation")
        return

    # Checked out a specific commit that is not a merge
    if commit and commit_info.sha == commit and not commit_info.is_merge:
        return

    if commit_info.is_merge:
        actual_head_sha = commit_info.parents[1]
    else:
        match = _MERGE_SUBJECT.search(commit_info.subject)
        if not match:
            logger.debug(f"Unexpected commit subject '{commit_info.subject}'")
            return
        actual_head_sha = match.group(1)

    if actual_head_sha.lower() != expected_head_sha.lower():
        raise VerificationError(ref, expected=expected_head_sha, actual=actual_head_sha)
