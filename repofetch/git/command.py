"""Async wrapper around the git command line client."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from repofetch.errors import CapabilityError, GitCommandError, NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "repofetch"


@dataclass(frozen=True)
class GitVersion:
    """A git (or git-lfs) version parsed out of a version banner."""

    major: int
    minor: int
    patch: int | None = None

    @classmethod
    def parse(cls, text: str) -> "GitVersion | None":
        match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?", text)
        if not match:
            return None
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch) if patch is not None else None)

    def check_minimum(self, minimum: "GitVersion") -> bool:
        """Check whether this version is at least ``minimum``."""
        return (self.major, self.minor, self.patch or 0) >= (
            minimum.major,
            minimum.minor,
            minimum.patch or 0,
        )

    def __str__(self) -> str:
        if self.patch is None:
            return f"{self.major}.{self.minor}"
        return f"{self.major}.{self.minor}.{self.patch}"


MINIMUM_GIT_VERSION = GitVersion(2, 18)
MINIMUM_GIT_LFS_VERSION = GitVersion(2, 1)


@dataclass(frozen=True)
class GitOutput:
    """Result of a git invocation."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


def escape_config_key(key: str) -> str:
    """Escape a config key for use in ``git config --get-regexp``."""
    return re.sub(r"([.*+?^${}()|\[\]\\])", r"\\\1", key)


class GitCommandManager:
    """Runs git commands inside one working directory.

    Use :func:`create_command_manager` to obtain an instance; it verifies the
    installed client before any command runs.
    """

    def __init__(self, working_directory: Path, git_path: str = "git") -> None:
        self.working_directory = Path(working_directory)
        self.git_path = git_path
        self.git_version: GitVersion | None = None
        self.lfs = False
        self._env: dict[str, str] = {}

    # Environment

    def get_working_directory(self) -> Path:
        return self.working_directory

    def set_environment_variable(self, name: str, value: str) -> None:
        self._env[name] = value

    def remove_environment_variable(self, name: str) -> None:
        self._env.pop(name, None)

    @property
    def environment(self) -> dict[str, str]:
        return dict(self._env)

    # Repository setup

    async def init(self) -> None:
        await self._exec(["init", str(self.working_directory)])

    async def remote_add(self, remote_name: str, remote_url: str) -> None:
        await self._exec(["remote", "add", remote_name, remote_url])

    async def try_get_fetch_url(self) -> str:
        output = await self._exec(
            ["config", "--local", "--get", "remote.origin.url"],
            allow_all_exit_codes=True,
        )
        if output.exit_code != 0:
            return ""
        return output.stdout.strip()

    async def try_disable_automatic_garbage_collection(self) -> bool:
        output = await self._exec(
            ["config", "--local", "gc.auto", "0"], allow_all_exit_codes=True
        )
        return output.exit_code == 0

    async def try_clean(self) -> bool:
        output = await self._exec(["clean", "-ffdx"], allow_all_exit_codes=True)
        return output.exit_code == 0

    async def try_reset(self) -> bool:
        output = await self._exec(
            ["reset", "--hard", "HEAD"], allow_all_exit_codes=True
        )
        return output.exit_code == 0

    # Config

    async def config(
        self,
        key: str,
        value: str,
        global_config: bool = False,
        add: bool = False,
    ) -> None:
        args = ["config", "--global" if global_config else "--local"]
        if add:
            args.append("--add")
        args.extend([key, value])
        await self._exec(args)

    async def config_exists(self, key: str, global_config: bool = False) -> bool:
        output = await self._exec(
            [
                "config",
                "--global" if global_config else "--local",
                "--name-only",
                "--get-regexp",
                escape_config_key(key),
            ],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    async def try_config_unset(self, key: str, global_config: bool = False) -> bool:
        output = await self._exec(
            ["config", "--global" if global_config else "--local", "--unset-all", key],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    # Branches and tags

    async def branch_exists(self, remote: bool, pattern: str) -> bool:
        args = ["branch", "--list"]
        if remote:
            args.append("--remote")
        args.append(pattern)
        output = await self._exec(args)
        return bool(output.stdout.strip())

    async def branch_list(self, remote: bool) -> list[str]:
        # rev-parse output is stable in a detached HEAD state, unlike "branch --list"
        args = ["rev-parse", "--symbolic-full-name"]
        args.append("--remotes=origin" if remote else "--branches")
        output = await self._exec(args)

        branches: list[str] = []
        for line in output.stdout.strip().splitlines():
            branch = line.strip()
            if not branch:
                continue
            if branch.startswith("refs/heads/"):
                branch = branch[len("refs/heads/") :]
            elif branch.startswith("refs/remotes/"):
                branch = branch[len("refs/remotes/") :]
            branches.append(branch)
        return branches

    async def branch_delete(self, remote: bool, branch: str) -> None:
        args = ["branch", "--delete", "--force"]
        if remote:
            args.append("--remote")
        args.append(branch)
        await self._exec(args)

    async def tag_exists(self, pattern: str) -> bool:
        output = await self._exec(["tag", "--list", pattern])
        return bool(output.stdout.strip())

    async def is_detached(self) -> bool:
        output = await self._exec(
            ["rev-parse", "--symbolic-full-name", "--verify", "--quiet", "HEAD"],
            allow_all_exit_codes=True,
        )
        return output.stdout.strip() == "HEAD"

    async def rev_parse(self, ref: str) -> str:
        output = await self._exec(["rev-parse", ref])
        return output.stdout.strip()

    async def sha_exists(self, sha: str) -> bool:
        output = await self._exec(
            ["rev-parse", "--verify", "--quiet", f"{sha}^{{object}}"],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    # Remote queries

    async def remote_branch_exists(self, ref: str) -> bool:
        """Check whether ``origin`` has a branch named ``ref``."""
        name = ref[len("refs/heads/") :] if ref.startswith("refs/heads/") else ref
        output = await self._ls_remote(["--heads", "origin", name])
        return f"refs/heads/{name}" in self._ls_remote_refs(output.stdout)

    async def remote_tag_exists(self, ref: str) -> bool:
        """Check whether ``origin`` has a tag named ``ref``."""
        name = ref[len("refs/tags/") :] if ref.startswith("refs/tags/") else ref
        output = await self._ls_remote(["--tags", "origin", name])
        refs = self._ls_remote_refs(output.stdout)
        return f"refs/tags/{name}" in refs or f"refs/tags/{name}^{{}}" in refs

    async def get_default_branch(self, repository_url: str) -> str:
        """Resolve the remote HEAD to a fully qualified branch ref."""
        output = await self._ls_remote(
            ["--quiet", "--exit-code", "--symref", repository_url, "HEAD"]
        )
        for line in output.stdout.strip().splitlines():
            line = line.strip()
            if line.startswith("ref:") and line.endswith("HEAD"):
                return line[len("ref:") : -len("HEAD")].strip()
        raise GitCommandError(
            ["ls-remote", "--symref", repository_url, "HEAD"],
            0,
            "Unexpected output when retrieving default branch",
        )

    # Fetch and checkout

    async def fetch(self, ref_spec: list[str], fetch_depth: int | None = None) -> None:
        args = [
            "-c",
            "protocol.version=2",
            "fetch",
            "--no-tags",
            "--prune",
            "--progress",
            "--no-recurse-submodules",
        ]
        if fetch_depth and fetch_depth > 0:
            args.append(f"--depth={fetch_depth}")
        elif (self.working_directory / ".git" / "shallow").exists():
            args.append("--unshallow")
        args.append("origin")
        args.extend(ref_spec)

        try:
            await self._exec(args)
        except GitCommandError as e:
            raise NetworkError(f"Failed to fetch {', '.join(ref_spec)}: {e}") from e

    async def checkout(self, ref: str, start_point: str = "") -> None:
        args = ["checkout", "--progress", "--force"]
        if start_point:
            args.extend(["-B", ref, start_point])
        else:
            args.append(ref)
        await self._exec(args)

    async def checkout_detach(self) -> None:
        await self._exec(["checkout", "--detach"])

    async def log1(self, format: str | None = None) -> str:
        args = ["log", "-1"]
        if format:
            args.append(f"--format={format}")
        output = await self._exec(args)
        return output.stdout

    # LFS

    async def lfs_install(self) -> None:
        await self._exec(["lfs", "install", "--local"])

    async def lfs_fetch(self, ref: str) -> None:
        try:
            await self._exec(["lfs", "fetch", "origin", ref])
        except GitCommandError as e:
            raise NetworkError(f"Failed to fetch LFS objects for {ref}: {e}") from e

    # Submodules

    async def submodule_sync(self, recursive: bool) -> None:
        args = ["submodule", "sync"]
        if recursive:
            args.append("--recursive")
        await self._exec(args)

    async def submodule_update(self, fetch_depth: int, recursive: bool) -> None:
        args = ["-c", "protocol.version=2", "submodule", "update", "--init", "--force"]
        if fetch_depth > 0:
            args.append(f"--depth={fetch_depth}")
        if recursive:
            args.append("--recursive")
        try:
            await self._exec(args)
        except GitCommandError as e:
            raise NetworkError(f"Failed to update submodules: {e}") from e

    async def submodule_foreach(self, command: str, recursive: bool) -> str:
        args = ["submodule", "foreach"]
        if recursive:
            args.append("--recursive")
        args.append(command)
        output = await self._exec(args)
        return output.stdout

    async def submodule_status(self) -> bool:
        output = await self._exec(
            ["submodule", "status"], allow_all_exit_codes=True
        )
        if output.exit_code != 0:
            logger.debug(f"Submodule status failed: {output.stderr.strip()}")
        return output.exit_code == 0

    async def get_submodules_list(self) -> list[str]:
        """Paths of the submodules declared in ``.gitmodules``."""
        if not (self.working_directory / ".gitmodules").exists():
            return []
        output = await self._exec(
            ["config", "--file", ".gitmodules", "--get-regexp", r"^submodule\..*\.path$"],
            allow_all_exit_codes=True,
        )
        paths: list[str] = []
        for line in output.stdout.strip().splitlines():
            parts = line.strip().split(maxsplit=1)
            if len(parts) == 2:
                paths.append(parts[1])
        return paths

    # Internals

    async def _initialize(self, lfs: bool) -> None:
        git_path = shutil.which(self.git_path)
        if not git_path:
            raise CapabilityError(
                f"Unable to locate '{self.git_path}' on the PATH. "
                f"Git {MINIMUM_GIT_VERSION} or higher is required."
            )
        self.git_path = git_path

        output = await self._exec(["version"], allow_all_exit_codes=True)
        version = GitVersion.parse(output.stdout) if output.exit_code == 0 else None
        if version is None:
            raise CapabilityError("Unable to determine git version")
        if not version.check_minimum(MINIMUM_GIT_VERSION):
            raise CapabilityError(
                f"Minimum required git version is {MINIMUM_GIT_VERSION}. "
                f"Your git ('{git_path}') is {version}"
            )
        self.git_version = version

        if lfs:
            output = await self._exec(["lfs", "version"], allow_all_exit_codes=True)
            lfs_version = GitVersion.parse(output.stdout) if output.exit_code == 0 else None
            if lfs_version is None:
                raise CapabilityError("Unable to determine git-lfs version")
            if not lfs_version.check_minimum(MINIMUM_GIT_LFS_VERSION):
                raise CapabilityError(
                    f"Minimum required git-lfs version is {MINIMUM_GIT_LFS_VERSION}. "
                    f"Your git-lfs version is {lfs_version}"
                )
        self.lfs = lfs

        self.set_environment_variable("GIT_HTTP_USER_AGENT", f"git/{version} ({USER_AGENT})")

    async def _ls_remote(self, args: list[str]) -> GitOutput:
        try:
            return await self._exec(["ls-remote", *args])
        except GitCommandError as e:
            raise NetworkError(f"Failed to query remote: {e}") from e

    @staticmethod
    def _ls_remote_refs(stdout: str) -> set[str]:
        refs: set[str] = set()
        for line in stdout.strip().splitlines():
            parts = line.split()
            if len(parts) >= 2:
                refs.add(parts[-1])
        return refs

    async def _exec(
        self, args: list[str], allow_all_exit_codes: bool = False
    ) -> GitOutput:
        """Run git with ``args`` in the working directory."""
        env = {
            **os.environ,
            "GIT_TERMINAL_PROMPT": "0",
            "GCM_INTERACTIVE": "Never",
            **self._env,
        }
        logger.debug(f"[command]git {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.git_path,
                *args,
                cwd=self.working_directory,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise CapabilityError(f"Unable to run git: {e}") from e
        try:
            stdout, stderr = await process.communicate()
        except BaseException:
            # A cancelled caller must not leave git running against the repository
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise

        output = GitOutput(
            exit_code=process.returncode or 0,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if output.exit_code != 0 and not allow_all_exit_codes:
            raise GitCommandError(args, output.exit_code, output.stderr)
        return output


async def create_command_manager(
    working_directory: Path, lfs: bool = False
) -> GitCommandManager:
    """Create a manager for ``working_directory`` after checking the client.

    Raises:
        CapabilityError: If git (or git-lfs when ``lfs`` is set) is missing or too old
    """
    manager = GitCommandManager(working_directory)
    await manager._initialize(lfs)
    return manager


async def get_command_manager(
    working_directory: Path, lfs: bool = False
) -> GitCommandManager | None:
    """Create a manager, or return None when the archive fallback should be used.

    Raises:
        CapabilityError: If ``lfs`` is set, since LFS has no fallback
    """
    logger.info(f"Working directory is '{working_directory}'")
    try:
        return await create_command_manager(working_directory, lfs)
    except CapabilityError as e:
        if lfs:
            raise
        logger.debug(f"Git client unavailable: {e}")
        return None
