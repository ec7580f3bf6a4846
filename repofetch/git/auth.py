"""Credential configuration for git operations.

Credentials are written into git config files only for as long as they are
needed. The token is never passed on a command line: a placeholder value is
written through ``git config`` and then replaced inside the config file.
"""

from __future__ import annotations

import base64
import logging
import os
import shutil
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from repofetch import fs
from repofetch.console import group
from repofetch.errors import AuthConfigError, CapabilityError
from repofetch.git.command import escape_config_key
from repofetch.state import StateStore
from repofetch.urls import DEFAULT_SERVER_URL, get_server_url

if TYPE_CHECKING:
    from repofetch.git.command import GitCommandManager
    from repofetch.models.settings import AcquisitionSettings

logger = logging.getLogger(__name__)

SSH_COMMAND_KEY = "core.sshCommand"
TOKEN_PLACEHOLDER_VALUE = "AUTHORIZATION: basic ***"
_CONFIG_PATH_MARKER = "repofetch-config:"

GITHUB_KNOWN_HOSTS = (
    "github.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOMqqnkVzrm0SdG6UOoqKLsabgH5C9okWi0dh2l9GKJl\n"
    "github.com ecdsa-sha2-nistp256 AAAAE2VjZHNhLXNoYTItbmlzdHAyNTYAAAAIbmlzdHAyNTYAAABBBEmKSENjQEezOmxkZMy7opKgwFB9nkt5YRrYMjNuG5N87uRgg6CLrbo5wAdT/y6v0mKV0U2w0WZ2YB/++Tpockg=\n"
)


async def _release(
    release: Callable[[], Awaitable[None]], description: str, body_failed: bool
) -> None:
    """Run a teardown step.

    After a failed body the teardown error is logged and swallowed so the
    original error reaches the caller; otherwise it propagates.
    """
    if not body_failed:
        await release()
        return
    try:
        await release()
    except Exception as e:
        logger.error(f"Failed to {description} after an earlier error: {e}")


class GitAuthHelper:
    """Installs and removes credentials for one repository."""

    def __init__(
        self,
        git: GitCommandManager,
        settings: AcquisitionSettings | None = None,
        state: StateStore | None = None,
        server_url: str | None = None,
    ) -> None:
        self.git = git
        self.settings = settings
        self.state = state or StateStore()

        if settings is not None:
            server_url = get_server_url(settings)
        else:
            server_url = (server_url or DEFAULT_SERVER_URL).rstrip("/")
        self.server_url = server_url
        self.token_config_key = f"http.{server_url}/.extraheader"
        self.insteadof_key = f"url.{server_url}/.insteadOf"
        host = urlparse(server_url).hostname or "github.com"
        self.insteadof_values = [f"git@{host}:"]

        token = settings.auth_token if settings else ""
        basic_credential = base64.b64encode(f"x-access-token:{token}".encode()).decode()
        self._token_config_value = f"AUTHORIZATION: basic {basic_credential}"

        self.ssh_command = ""
        self.ssh_key_path: Path | None = None
        self.ssh_known_hosts_path: Path | None = None
        self.temporary_home_path: Path | None = None

    @property
    def persist_credentials(self) -> bool:
        return bool(self.settings and self.settings.persist_credentials)

    @property
    def submodules_enabled(self) -> bool:
        if self.settings is not None:
            return self.settings.fetch_submodules
        return (self.git.get_working_directory() / ".gitmodules").exists()

    async def configure_auth(self) -> None:
        """Configure token and SSH credentials in the local repository config."""
        # Remove leftovers from a previous run
        await self.remove_auth()

        await self._configure_ssh()
        await self._configure_token()

    async def configure_global_auth(self) -> None:
        """Configure the token in a temporary global config.

        Submodule clones do not read the parent repository's local config,
        so HOME is pointed at a copy of the user's global config for the
        duration of the submodule operations.
        """
        if self.settings is None:
            raise AuthConfigError("Settings are required to configure global auth")
        self.temporary_home_path = self.settings.temp_dir / str(uuid.uuid4())
        self.temporary_home_path.mkdir(parents=True, exist_ok=True)

        home = Path(os.environ.get("HOME") or Path.home())
        git_config_path = home / ".gitconfig"
        new_git_config_path = self.temporary_home_path / ".gitconfig"
        if git_config_path.exists():
            logger.info(f"Copying '{git_config_path}' to '{new_git_config_path}'")
            shutil.copyfile(git_config_path, new_git_config_path)
        else:
            new_git_config_path.write_text("")

        try:
            logger.info(
                f"Temporarily overriding HOME='{self.temporary_home_path}' "
                "before making global git config changes"
            )
            self.git.set_environment_variable("HOME", str(self.temporary_home_path))

            await self._configure_token(new_git_config_path, global_config=True)

            # Fetch over HTTPS instead of SSH
            await self.git.try_config_unset(self.insteadof_key, global_config=True)
            if not self.settings.ssh_key:
                for value in self.insteadof_values:
                    await self.git.config(
                        self.insteadof_key, value, global_config=True, add=True
                    )
        except Exception:
            logger.info(
                "Encountered an error when attempting to configure token. Attempting unconfigure."
            )
            await self.git.try_config_unset(self.token_config_key, global_config=True)
            raise

    async def configure_submodule_auth(self) -> None:
        """Write credentials into every submodule's local config."""
        if self.settings is None:
            raise AuthConfigError("Settings are required to configure submodule auth")
        recursive = self.settings.nested_submodules

        # Remove HTTPS-instead-of-SSH left by an earlier run
        await self._remove_git_config(self.insteadof_key, submodule_only=True)

        if not self.settings.persist_credentials:
            return

        output = await self.git.submodule_foreach(
            f"git config --local '{self.token_config_key}' '{TOKEN_PLACEHOLDER_VALUE}' && "
            f'echo "{_CONFIG_PATH_MARKER}$(git rev-parse --absolute-git-dir)/config"',
            recursive,
        )
        for line in output.splitlines():
            if line.startswith(_CONFIG_PATH_MARKER):
                config_path = Path(line[len(_CONFIG_PATH_MARKER) :].strip())
                logger.debug(f"Replacing token placeholder in '{config_path}'")
                self._replace_token_placeholder(config_path)

        if self.settings.ssh_key:
            await self.git.submodule_foreach(
                f"git config --local '{SSH_COMMAND_KEY}' '{self.ssh_command}'", recursive
            )
        else:
            for value in self.insteadof_values:
                await self.git.submodule_foreach(
                    f"git config --local --add '{self.insteadof_key}' '{value}'", recursive
                )

    async def remove_auth(self) -> None:
        await self._remove_ssh()
        await self._remove_token()

    async def remove_global_auth(self) -> None:
        logger.debug("Unsetting HOME override")
        self.git.remove_environment_variable("HOME")
        if self.temporary_home_path is not None:
            fs.remove(self.temporary_home_path)
            self.temporary_home_path = None

    @asynccontextmanager
    async def global_auth(self) -> AsyncIterator[GitAuthHelper]:
        """Scope in which the token is available to nested submodule clones."""
        try:
            with group("Setting up auth for fetching submodules"):
                await self.configure_global_auth()
            yield self
        except BaseException:
            await _release(self.remove_global_auth, "remove global auth", body_failed=True)
            raise
        else:
            await self.remove_global_auth()

    # SSH

    async def _configure_ssh(self) -> None:
        if self.settings is None or not self.settings.ssh_key:
            return

        temp_dir = self.settings.temp_dir
        temp_dir.mkdir(parents=True, exist_ok=True)
        unique_id = str(uuid.uuid4())

        # Key, readable by the owner only
        self.ssh_key_path = temp_dir / unique_id
        self.state.set_ssh_key_path(self.ssh_key_path)
        fd = os.open(self.ssh_key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(self.settings.ssh_key.strip() + "\n")
        os.chmod(self.ssh_key_path, 0o600)

        # Known hosts
        user_known_hosts_path = Path.home() / ".ssh" / "known_hosts"
        known_hosts = ""
        if user_known_hosts_path.exists():
            known_hosts += (
                f"# Begin from {user_known_hosts_path}\n"
                f"{user_known_hosts_path.read_text()}\n"
                f"# End from {user_known_hosts_path}\n"
            )
        if self.settings.ssh_known_hosts:
            known_hosts += (
                "# Begin from input known hosts\n"
                f"{self.settings.ssh_known_hosts}\n"
                "# End from input known hosts\n"
            )
        known_hosts += (
            "# Begin implicitly added github.com\n"
            f"{GITHUB_KNOWN_HOSTS}"
            "# End implicitly added github.com\n"
        )
        self.ssh_known_hosts_path = temp_dir / f"{unique_id}_known_hosts"
        self.state.set_ssh_known_hosts_path(self.ssh_known_hosts_path)
        self.ssh_known_hosts_path.write_text(known_hosts)

        ssh_path = shutil.which("ssh")
        if not ssh_path:
            raise CapabilityError("Unable to locate executable file: ssh")
        self.ssh_command = f'"{ssh_path}" -i "{self.ssh_key_path}"'
        if self.settings.ssh_strict:
            self.ssh_command += " -o StrictHostKeyChecking=yes -o CheckHostIP=no"
        self.ssh_command += f' -o "UserKnownHostsFile={self.ssh_known_hosts_path}"'
        logger.info(f"Temporarily overriding GIT_SSH_COMMAND={self.ssh_command}")
        self.git.set_environment_variable("GIT_SSH_COMMAND", self.ssh_command)

        if self.settings.persist_credentials:
            await self.git.config(SSH_COMMAND_KEY, self.ssh_command)

    async def _remove_ssh(self) -> None:
        key_path = self.ssh_key_path or self.state.ssh_key_path
        if key_path:
            try:
                fs.remove(key_path)
            except OSError as e:
                logger.debug(str(e))
                logger.warning(f"Failed to remove SSH key '{key_path}'")

        known_hosts_path = self.ssh_known_hosts_path or self.state.ssh_known_hosts_path
        if known_hosts_path:
            try:
                fs.remove(known_hosts_path)
            except OSError as e:
                logger.debug(str(e))

        self.git.remove_environment_variable("GIT_SSH_COMMAND")
        await self._remove_git_config(SSH_COMMAND_KEY)

    # Token

    async def _configure_token(
        self, config_path: Path | None = None, global_config: bool = False
    ) -> None:
        if (config_path is not None) != global_config:
            raise ValueError("Unexpected configure token parameter combination")
        if self.settings is None or not self.settings.auth_token:
            logger.debug("No auth token configured")
            return

        if config_path is None:
            config_path = self.git.get_working_directory() / ".git" / "config"

        await self.git.config(
            self.token_config_key, TOKEN_PLACEHOLDER_VALUE, global_config=global_config
        )
        self._replace_token_placeholder(config_path)

    def _replace_token_placeholder(self, config_path: Path) -> None:
        content = config_path.read_text()
        index = content.find(TOKEN_PLACEHOLDER_VALUE)
        if index < 0 or index != content.rfind(TOKEN_PLACEHOLDER_VALUE):
            raise AuthConfigError(f"Unable to replace auth placeholder in {config_path}")
        config_path.write_text(content.replace(TOKEN_PLACEHOLDER_VALUE, self._token_config_value))

    async def _remove_token(self) -> None:
        await self._remove_git_config(self.token_config_key)

    async def _remove_git_config(self, config_key: str, submodule_only: bool = False) -> None:
        if not submodule_only:
            if await self.git.config_exists(config_key) and not await self.git.try_config_unset(
                config_key
            ):
                logger.warning(f"Failed to remove '{config_key}' from the git config")

        if self.submodules_enabled:
            pattern = escape_config_key(config_key)
            await self.git.submodule_foreach(
                f"git config --local --name-only --get-regexp '{pattern}' && "
                f"git config --local --unset-all '{config_key}' || :",
                True,
            )


@asynccontextmanager
async def credentials(helper: GitAuthHelper, persist: bool) -> AsyncIterator[GitAuthHelper]:
    """Scope in which credentials are configured.

    Credentials are removed on every exit path unless ``persist`` is set.
    """
    try:
        with group("Setting up auth"):
            await helper.configure_auth()
        yield helper
    except BaseException:
        if not persist:
            with group("Removing auth"):
                await _release(helper.remove_auth, "remove auth", body_failed=True)
        raise
    else:
        if not persist:
            with group("Removing auth"):
                await helper.remove_auth()
