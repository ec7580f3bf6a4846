"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import inspect
import io
import re
import tarfile
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest

from repofetch.errors import GitCommandError, NetworkError
from repofetch.models.settings import AcquisitionSettings
from repofetch.providers.github import GitHubClient
from repofetch.state import StateStore

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40


class FakeGit:
    """In-memory stand-in for GitCommandManager.

    Refs live in dicts; config values are written to real files so the
    credential code can replace placeholders in them. Every call is
    recorded in ``calls`` as ``(method, args)``.
    """

    def __init__(self, working_directory: Path) -> None:
        self.working_directory = Path(working_directory)
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._env: dict[str, str] = {}

        # Remote state
        self.remote_url = ""
        self.remote_branches: dict[str, str] = {"main": SHA_A}
        self.remote_tags: dict[str, str] = {}
        self.default_branch = "refs/heads/main"

        # Local state
        self.tracking: dict[str, str] = {}
        self.local_tags: dict[str, str] = {}
        self.pulls: dict[str, str] = {}
        self.objects: set[str] = set()
        self.local_branches: list[str] = []
        self.detached = True
        self.head = ""

        self.submodule_paths: list[str] = []
        self.submodule_git_dirs: list[Path] = []
        self.log_output: str | None = None
        self.checkout_env: dict[str, str] = {}

        # Failure injection
        self.on_fetch: Callable[[FakeGit, list[str]], Any] | None = None
        self.fail_config_unset = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    @property
    def local_config_path(self) -> Path:
        return self.working_directory / ".git" / "config"

    def _config_path(self, global_config: bool) -> Path:
        if global_config:
            return Path(self._env["HOME"]) / ".gitconfig"
        return self.local_config_path

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
        self._record("init")
        (self.working_directory / ".git").mkdir(parents=True, exist_ok=True)
        self.local_config_path.touch()

    async def remote_add(self, remote_name: str, remote_url: str) -> None:
        self._record("remote_add", remote_name, remote_url)
        self.remote_url = remote_url

    async def try_get_fetch_url(self) -> str:
        return self.remote_url

    async def try_disable_automatic_garbage_collection(self) -> bool:
        self._record("try_disable_automatic_garbage_collection")
        return True

    async def try_clean(self) -> bool:
        self._record("try_clean")
        return True

    async def try_reset(self) -> bool:
        self._record("try_reset")
        return True

    # Config

    async def config(
        self, key: str, value: str, global_config: bool = False, add: bool = False
    ) -> None:
        self._record("config", key, value, global_config)
        path = self._config_path(global_config)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(f"\t{key} = {value}\n")

    async def config_exists(self, key: str, global_config: bool = False) -> bool:
        path = self._config_path(global_config)
        return path.exists() and f"\t{key} = " in path.read_text()

    async def try_config_unset(self, key: str, global_config: bool = False) -> bool:
        self._record("try_config_unset", key, global_config)
        if self.fail_config_unset:
            raise GitCommandError(["config", "--unset-all", key], 5, "config locked")
        path = self._config_path(global_config)
        if not path.exists():
            return False
        _remove_config_lines(path, key)
        return True

    # Branches and tags

    async def branch_exists(self, remote: bool, pattern: str) -> bool:
        if remote:
            return pattern[len("origin/") :] in self.tracking
        return pattern in self.local_branches

    async def branch_list(self, remote: bool) -> list[str]:
        if remote:
            return [f"origin/{name}" for name in self.tracking]
        return list(self.local_branches)

    async def branch_delete(self, remote: bool, branch: str) -> None:
        self._record("branch_delete", remote, branch)
        if remote:
            self.tracking.pop(branch[len("origin/") :], None)
        elif branch in self.local_branches:
            self.local_branches.remove(branch)

    async def tag_exists(self, pattern: str) -> bool:
        return pattern in self.local_tags

    async def is_detached(self) -> bool:
        return self.detached

    async def rev_parse(self, ref: str) -> str:
        return self._resolve(ref)

    async def sha_exists(self, sha: str) -> bool:
        return sha in self.objects or sha in self.tracking.values()

    # Remote queries

    async def remote_branch_exists(self, ref: str) -> bool:
        self._record("remote_branch_exists", ref)
        name = ref[len("refs/heads/") :] if ref.startswith("refs/heads/") else ref
        return name in self.remote_branches

    async def remote_tag_exists(self, ref: str) -> bool:
        self._record("remote_tag_exists", ref)
        name = ref[len("refs/tags/") :] if ref.startswith("refs/tags/") else ref
        return name in self.remote_tags

    async def get_default_branch(self, repository_url: str) -> str:
        self._record("get_default_branch", repository_url)
        return self.default_branch

    # Fetch and checkout

    async def fetch(self, ref_spec: list[str], fetch_depth: int | None = None) -> None:
        self._record("fetch", list(ref_spec), fetch_depth)
        if self.on_fetch is not None:
            result = self.on_fetch(self, ref_spec)
            if inspect.isawaitable(result):
                await result
        for spec in ref_spec:
            self._apply_ref_spec(spec)

    def _apply_ref_spec(self, spec: str) -> None:
        source, _, destination = spec.lstrip("+").partition(":")
        if source.startswith("refs/heads/") and source.endswith("*"):
            prefix = source[len("refs/heads/") : -1]
            for name, sha in self.remote_branches.items():
                if name.startswith(prefix):
                    self.tracking[name] = sha
        elif source.startswith("refs/tags/") and source.endswith("*"):
            prefix = source[len("refs/tags/") : -1]
            for name, sha in self.remote_tags.items():
                if name.startswith(prefix):
                    self.local_tags[name] = sha
        elif destination.startswith("refs/remotes/origin/"):
            name = destination[len("refs/remotes/origin/") :]
            if source.startswith("refs/heads/"):
                self.tracking[name] = self.remote_branches[source[len("refs/heads/") :]]
            else:
                self.tracking[name] = source
        elif destination.startswith("refs/tags/"):
            name = destination[len("refs/tags/") :]
            self.local_tags[name] = self.remote_tags.get(name, source)
        elif destination.startswith("refs/remotes/pull/"):
            self.pulls[destination] = source
        else:
            self.objects.add(source)

    def _resolve(self, ref: str) -> str:
        if ref.startswith("refs/remotes/origin/"):
            return self.tracking.get(ref[len("refs/remotes/origin/") :], "")
        if ref.startswith("refs/tags/"):
            return self.local_tags.get(ref[len("refs/tags/") :], "")
        if ref in self.pulls:
            return self.pulls[ref]
        return ref

    async def checkout(self, ref: str, start_point: str = "") -> None:
        self._record("checkout", ref, start_point)
        self.head = self._resolve(start_point or ref)
        self.detached = not start_point
        self.checkout_env = dict(self._env)

    async def checkout_detach(self) -> None:
        self._record("checkout_detach")
        self.detached = True

    async def log1(self, format: str | None = None) -> str:
        self._record("log1", format)
        if self.log_output is not None:
            return self.log_output
        return f"{self.head}\n\nInitial commit\n"

    # LFS

    async def lfs_install(self) -> None:
        self._record("lfs_install")

    async def lfs_fetch(self, ref: str) -> None:
        self._record("lfs_fetch", ref)

    # Submodules

    async def submodule_sync(self, recursive: bool) -> None:
        self._record("submodule_sync", recursive)

    async def submodule_update(self, fetch_depth: int, recursive: bool) -> None:
        self._record("submodule_update", fetch_depth, recursive)

    async def submodule_foreach(self, command: str, recursive: bool) -> str:
        self._record("submodule_foreach", command, recursive)
        output = ""
        if "rev-parse --absolute-git-dir" in command:
            key, value = re.findall(r"'([^']*)'", command)[:2]
            for git_dir in self.submodule_git_dirs:
                config_path = git_dir / "config"
                with open(config_path, "a") as f:
                    f.write(f"\t{key} = {value}\n")
                output += f"Entering '{git_dir.name}'\nrepofetch-config:{config_path}\n"
        elif "--unset-all" in command:
            key = re.search(r"--unset-all '([^']*)'", command).group(1)  # type: ignore[union-attr]
            for git_dir in self.submodule_git_dirs:
                _remove_config_lines(git_dir / "config", key)
        return output

    async def submodule_status(self) -> bool:
        return True

    async def get_submodules_list(self) -> list[str]:
        return list(self.submodule_paths)


def _remove_config_lines(path: Path, key: str) -> None:
    if not path.exists():
        return
    lines = path.read_text().splitlines(keepends=True)
    path.write_text("".join(line for line in lines if not line.startswith(f"\t{key} = ")))


def fail_fetch(git: FakeGit, ref_spec: list[str]) -> None:
    raise NetworkError(f"Failed to fetch {', '.join(ref_spec)}")


def make_tarball(files: dict[str, str]) -> bytes:
    """Build a gzipped tarball from archive member names to contents."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def repository_path(temp_dir: Path) -> Path:
    return temp_dir / "workspace" / "hello-world"


@pytest.fixture
def fake_git(repository_path: Path) -> FakeGit:
    repository_path.mkdir(parents=True, exist_ok=True)
    return FakeGit(repository_path)


@pytest.fixture
def state(temp_dir: Path) -> StateStore:
    return StateStore(temp_dir / "state" / "repofetch-state.json")


@pytest.fixture
def make_settings(temp_dir: Path, repository_path: Path) -> Callable[..., AcquisitionSettings]:
    """Factory for settings pointing into the temporary directory."""

    def factory(**overrides: Any) -> AcquisitionSettings:
        values: dict[str, Any] = {
            "repository_owner": "octocat",
            "repository_name": "hello-world",
            "repository_path": repository_path,
            "ref": "refs/heads/main",
            "commit": SHA_A,
            "persist_credentials": False,
            "auth_token": "ghs_secret_token",
            "temp_dir": temp_dir / "runner-temp",
        }
        values.update(overrides)
        return AcquisitionSettings(**values)

    return factory


@pytest.fixture
def api_requests() -> list[httpx.Request]:
    """Requests seen by the mock GitHub API."""
    return []


@pytest.fixture
def github_routes() -> dict[str, Callable[[], httpx.Response]]:
    """Path -> response factory served by the mock GitHub API."""
    return {
        "/repos/octocat/hello-world": lambda: httpx.Response(
            200, json={"default_branch": "main"}
        ),
    }


@pytest.fixture
def github_client(
    temp_dir: Path,
    api_requests: list[httpx.Request],
    github_routes: dict[str, Callable[[], httpx.Response]],
) -> GitHubClient:
    def handler(request: httpx.Request) -> httpx.Response:
        api_requests.append(request)
        route = github_routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return route()

    return GitHubClient(
        "https://api.github.com",
        token="ghs_secret_token",
        temp_dir=temp_dir / "runner-temp",
        transport=httpx.MockTransport(handler),
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "mock: tests using mocked git or API responses")
    config.addinivalue_line("markers", "integration: tests requiring a real git binary")
    config.addinivalue_line("markers", "slow: slow running tests")
