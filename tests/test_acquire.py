"""Tests for the acquisition driver."""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path

import httpx
import pytest
from conftest import SHA_A, SHA_B, SHA_C, FakeGit, fail_fetch, make_tarball

from repofetch.acquire import cleanup, get_source
from repofetch.errors import (
    CapabilityError,
    ConfigurationConflictError,
    NetworkError,
    VerificationError,
)
from repofetch.git.command import get_command_manager
from repofetch.models.result import AcquisitionMethod
from repofetch.state import StateStore, get_state_file

BASIC_CREDENTIAL = base64.b64encode(b"x-access-token:ghs_secret_token").decode()


@pytest.fixture
def use_git(monkeypatch: pytest.MonkeyPatch):
    """Make the driver use the given client (or None for the archive path)."""

    def install(git: FakeGit | None) -> None:
        async def fake_get_command_manager(path: Path, lfs: bool = False) -> FakeGit | None:
            return git

        monkeypatch.setattr("repofetch.acquire.get_command_manager", fake_get_command_manager)

    return install


@pytest.fixture
def fake_ssh(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("repofetch.git.auth.shutil.which", lambda name: f"/usr/bin/{name}")


@pytest.mark.mock
class TestNativePath:
    """Tests for acquisition with a git client."""

    @pytest.mark.asyncio
    async def test_branch_and_commit(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state, api_requests
    ) -> None:
        use_git(fake_git)

        result = await get_source(make_settings(), github_client, state)

        assert result.method == AcquisitionMethod.GIT
        assert result.ref == "refs/heads/main"
        assert result.commit == SHA_A
        assert fake_git.called("init") == [()]
        assert fake_git.called("remote_add") == [("origin", "https://github.com/octocat/hello-world")]
        assert fake_git.called("checkout") == [("main", "refs/remotes/origin/main")]
        assert state.repository_path == fake_git.working_directory
        assert api_requests == []
        # Not persisted
        assert BASIC_CREDENTIAL not in fake_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_persisted_credentials(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)

        await get_source(make_settings(persist_credentials=True), github_client, state)

        assert BASIC_CREDENTIAL in fake_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_credentials_removed_after_failure(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)
        fake_git.on_fetch = fail_fetch

        with pytest.raises(NetworkError):
            await get_source(make_settings(), github_client, state)

        assert BASIC_CREDENTIAL not in fake_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_credentials_removed_when_cancelled(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state, fake_ssh
    ) -> None:
        use_git(fake_git)
        fetch_started = asyncio.Event()

        async def block_fetch(git: FakeGit, ref_spec: list[str]) -> None:
            fetch_started.set()
            await asyncio.Event().wait()

        fake_git.on_fetch = block_fetch
        task = asyncio.create_task(
            get_source(make_settings(ssh_key="key"), github_client, state)
        )
        await fetch_started.wait()
        key_path = state.ssh_key_path
        assert key_path is not None and key_path.exists()
        assert BASIC_CREDENTIAL in fake_git.local_config_path.read_text()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert BASIC_CREDENTIAL not in fake_git.local_config_path.read_text()
        assert not key_path.exists()
        assert "GIT_SSH_COMMAND" not in fake_git.environment

    @pytest.mark.asyncio
    async def test_full_sha_ref_checked_out_as_commit(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state, api_requests
    ) -> None:
        use_git(fake_git)

        result = await get_source(make_settings(ref=SHA_B.upper(), commit=""), github_client, state)

        assert result.ref == ""
        assert result.commit == SHA_B
        assert fake_git.called("fetch") == [([SHA_B], 1)]
        assert fake_git.called("checkout") == [(SHA_B, "")]
        assert api_requests == []

    @pytest.mark.asyncio
    async def test_default_branch_from_api(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state, api_requests
    ) -> None:
        use_git(fake_git)

        result = await get_source(make_settings(ref="", commit=""), github_client, state)

        assert result.ref == "refs/heads/main"
        assert [request.url.path for request in api_requests] == ["/repos/octocat/hello-world"]
        assert fake_git.called("get_default_branch") == []
        assert fake_git.called("fetch") == [(["+refs/heads/main:refs/remotes/origin/main"], 1)]

    @pytest.mark.asyncio
    async def test_default_branch_over_ssh(
        self,
        fake_git: FakeGit,
        use_git,
        make_settings,
        github_client,
        state,
        api_requests,
        fake_ssh,
    ) -> None:
        use_git(fake_git)
        fake_git.remote_branches["trunk"] = SHA_B
        fake_git.default_branch = "refs/heads/trunk"

        result = await get_source(
            make_settings(ref="", commit="", ssh_key="key"), github_client, state
        )

        assert result.ref == "refs/heads/trunk"
        assert result.commit == SHA_B
        assert fake_git.called("get_default_branch") == [
            ("git@github.com:octocat/hello-world.git",)
        ]
        assert api_requests == []

    @pytest.mark.asyncio
    async def test_unknown_ref_replaced_by_default_branch(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)

        result = await get_source(make_settings(ref="no-such-branch", commit=""), github_client, state)

        assert result.ref == "refs/heads/main"

    @pytest.mark.asyncio
    async def test_tag_is_not_replaced(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state, api_requests
    ) -> None:
        use_git(fake_git)
        fake_git.remote_tags["v1.0"] = SHA_C

        result = await get_source(make_settings(ref="v1.0", commit=""), github_client, state)

        assert result.ref == "v1.0"
        assert result.commit == SHA_C
        assert fake_git.called("checkout") == [("refs/tags/v1.0", "")]
        assert api_requests == []

    @pytest.mark.asyncio
    async def test_stale_pull_request_merge(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)
        fake_git.log_output = f"{SHA_B}\n{SHA_A} {SHA_C}\nMerge {SHA_C} into {SHA_A}\n"
        settings = make_settings(
            ref="refs/pull/5/merge", commit=SHA_B, pull_request_head_sha="d" * 40
        )

        with pytest.raises(VerificationError):
            await get_source(settings, github_client, state)

        assert BASIC_CREDENTIAL not in fake_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_no_submodule_calls_when_disabled(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)

        await get_source(make_settings(), github_client, state)

        assert not [name for name, _ in fake_git.calls if name.startswith("submodule_")]

    @pytest.mark.asyncio
    async def test_submodules_updated_under_credentials(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)

        await get_source(make_settings(submodules="recursive"), github_client, state)

        names = [name for name, _ in fake_git.calls]
        assert names.index("checkout") < names.index("submodule_update") < names.index("log1")

    @pytest.mark.asyncio
    async def test_lfs_steps(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)

        await get_source(make_settings(lfs=True), github_client, state)

        assert fake_git.called("lfs_install") == [()]
        assert fake_git.called("lfs_fetch") == [("refs/remotes/origin/main",)]

    @pytest.mark.asyncio
    async def test_existing_repository_reused(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)
        await fake_git.init()
        fake_git.remote_url = "https://github.com/octocat/hello-world"
        fake_git.local_branches = ["old"]
        fake_git.tracking = {"main/nested": SHA_B, "other": SHA_B}
        (fake_git.working_directory / "keep.txt").write_text("x")
        fake_git.calls.clear()

        await get_source(make_settings(), github_client, state)

        assert fake_git.called("init") == []
        assert ("try_clean", ()) in fake_git.calls
        assert (False, "old") in fake_git.called("branch_delete")
        assert (True, "origin/main/nested") in fake_git.called("branch_delete")
        assert (True, "origin/other") not in fake_git.called("branch_delete")
        assert (fake_git.working_directory / "keep.txt").exists()

    @pytest.mark.asyncio
    async def test_different_remote_recreates_directory(
        self, fake_git: FakeGit, use_git, make_settings, github_client, state
    ) -> None:
        use_git(fake_git)
        await fake_git.init()
        fake_git.remote_url = "https://github.com/someone/else"
        (fake_git.working_directory / "stale.txt").write_text("x")

        await get_source(make_settings(), github_client, state)

        assert not (fake_git.working_directory / "stale.txt").exists()
        assert len(fake_git.called("init")) == 2

    @pytest.mark.asyncio
    async def test_file_at_path_is_replaced(
        self, repository_path: Path, use_git, make_settings, github_client, state
    ) -> None:
        repository_path.parent.mkdir(parents=True)
        repository_path.write_text("not a directory")
        git = FakeGit(repository_path)
        use_git(git)

        await get_source(make_settings(), github_client, state)

        assert repository_path.is_dir()

    @pytest.mark.asyncio
    async def test_dangling_symlink_at_path_is_replaced(
        self, repository_path: Path, temp_dir: Path, use_git, make_settings, github_client, state
    ) -> None:
        repository_path.parent.mkdir(parents=True)
        repository_path.symlink_to(temp_dir / "gone")
        use_git(FakeGit(repository_path))

        await get_source(make_settings(), github_client, state)

        assert repository_path.is_dir()
        assert not repository_path.is_symlink()


@pytest.mark.mock
class TestArchivePath:
    """Tests for the REST API fallback."""

    @pytest.mark.asyncio
    async def test_download(
        self, use_git, make_settings, github_client, github_routes, state, repository_path: Path
    ) -> None:
        use_git(None)
        archive = make_tarball({"octocat-hello-world-aaaaaaa/README.md": "# Hello\n"})
        github_routes[f"/repos/octocat/hello-world/tarball/{SHA_A}"] = lambda: httpx.Response(
            200, content=archive
        )

        result = await get_source(make_settings(), github_client, state)

        assert result.method == AcquisitionMethod.ARCHIVE
        assert (repository_path / "README.md").read_text() == "# Hello\n"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,option",
        [({"submodules": True}, "submodules"), ({"ssh_key": "key"}, "ssh-key")],
    )
    async def test_conflicting_settings(
        self, use_git, make_settings, github_client, state, api_requests, overrides, option
    ) -> None:
        use_git(None)

        with pytest.raises(ConfigurationConflictError) as exc_info:
            await get_source(make_settings(**overrides), github_client, state)

        assert exc_info.value.option == option
        assert api_requests == []


@pytest.mark.mock
class TestGetCommandManager:
    """Tests for choosing between the client and the fallback."""

    @pytest.mark.asyncio
    async def test_missing_client_falls_back(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def missing(path: Path, lfs: bool = False):
            raise CapabilityError("Unable to locate 'git' on the PATH")

        monkeypatch.setattr("repofetch.git.command.create_command_manager", missing)

        assert await get_command_manager(temp_dir, lfs=False) is None

    @pytest.mark.asyncio
    async def test_missing_client_with_lfs_is_fatal(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def missing(path: Path, lfs: bool = False):
            raise CapabilityError("Unable to locate 'git' on the PATH")

        monkeypatch.setattr("repofetch.git.command.create_command_manager", missing)

        with pytest.raises(CapabilityError):
            await get_command_manager(temp_dir, lfs=True)


@pytest.mark.mock
class TestCleanup:
    """Tests for post-run credential removal."""

    @pytest.fixture
    def configured_git(self, fake_git: FakeGit, monkeypatch: pytest.MonkeyPatch) -> FakeGit:
        (fake_git.working_directory / ".git").mkdir()
        fake_git.local_config_path.write_text(
            f"\thttp.https://github.com/.extraheader = AUTHORIZATION: basic {BASIC_CREDENTIAL}\n"
        )

        async def create(path: Path, lfs: bool = False) -> FakeGit:
            return fake_git

        monkeypatch.setattr("repofetch.acquire.create_command_manager", create)
        return fake_git

    @pytest.mark.asyncio
    async def test_removes_token(self, configured_git: FakeGit, state) -> None:
        assert await cleanup(configured_git.working_directory, state) is True
        assert BASIC_CREDENTIAL not in configured_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_path_from_state(self, configured_git: FakeGit, state) -> None:
        state.set_repository_path(configured_git.working_directory)

        assert await cleanup(state=state) is True
        assert BASIC_CREDENTIAL not in configured_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_enterprise_server_from_state(self, fake_git: FakeGit, state, monkeypatch) -> None:
        (fake_git.working_directory / ".git").mkdir()
        fake_git.local_config_path.write_text(
            "\thttp.https://git.example.com/.extraheader = AUTHORIZATION: basic xyz\n"
        )

        async def create(path: Path, lfs: bool = False) -> FakeGit:
            return fake_git

        monkeypatch.setattr("repofetch.acquire.create_command_manager", create)
        state.set("server_url", "https://git.example.com")

        await cleanup(fake_git.working_directory, state)

        assert "extraheader" not in fake_git.local_config_path.read_text()

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, temp_dir: Path, state) -> None:
        assert await cleanup(temp_dir / "missing", state) is False
        assert await cleanup(state=state) is False

    @pytest.mark.asyncio
    async def test_state_from_custom_temp_dir(
        self,
        fake_git: FakeGit,
        use_git,
        make_settings,
        github_client,
        temp_dir: Path,
        fake_ssh,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("REPOFETCH_STATE_FILE", raising=False)
        use_git(fake_git)

        async def create(path: Path, lfs: bool = False) -> FakeGit:
            return fake_git

        monkeypatch.setattr("repofetch.acquire.create_command_manager", create)
        custom_temp = temp_dir / "custom-temp"
        settings = make_settings(ssh_key="key", persist_credentials=True, temp_dir=custom_temp)
        await get_source(settings, github_client)
        key_path = StateStore(get_state_file(custom_temp)).ssh_key_path
        assert key_path is not None and key_path.exists()

        assert await cleanup(temp_dir=custom_temp) is True

        assert not key_path.exists()
        assert BASIC_CREDENTIAL not in fake_git.local_config_path.read_text()
