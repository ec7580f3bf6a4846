"""Input handling: environment variables, YAML files and CLI options."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from repofetch.errors import ConfigurationError
from repofetch.models.settings import AcquisitionSettings, SubmoduleMode

logger = logging.getLogger(__name__)

ENV_PREFIX = "REPOFETCH_"
TOKEN_ENV_VARS = ("REPOFETCH_TOKEN", "GITHUB_TOKEN")


class AcquisitionInputs(BaseModel):
    """Raw user inputs, before defaults from the CI context are applied.

    The auth token is deliberately absent: it is only read from the
    environment.
    """

    repository: str | None = Field(default=None, description="owner/name")
    ref: str = Field(default="")
    path: str = Field(default="", description="Path under the workspace")
    fetch_depth: int | str = Field(default=1)
    clean: bool = Field(default=True)
    lfs: bool = Field(default=False)
    submodules: str | bool = Field(default=False)
    submodules_remote_branch: str | None = None
    persist_credentials: bool = Field(default=True)
    ssh_key: str | None = None
    ssh_known_hosts: str | None = None
    ssh_strict: bool = Field(default=True)
    server_url: str | None = None
    api_url: str | None = None

    model_config = {"extra": "forbid"}

    @classmethod
    def from_yaml(cls, path: Path) -> "AcquisitionInputs":
        """Load inputs from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Unable to read config file '{path}': {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file '{path}' must contain a mapping")
        data = {key.replace("-", "_"): value for key, value in data.items()}
        if "token" in data or "auth_token" in data:
            raise ConfigurationError(
                "The auth token cannot be set in a config file. "
                f"Set {TOKEN_ENV_VARS[0]} instead."
            )
        return _validate_inputs(data)

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "AcquisitionInputs":
        """Load inputs from ``REPOFETCH_*`` variables."""
        data: dict[str, Any] = {}
        for field_name in cls.model_fields:
            value = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
            if value is not None and value != "":
                data[field_name] = value
        return _validate_inputs(data)


def _validate_inputs(data: dict[str, Any]) -> AcquisitionInputs:
    try:
        return AcquisitionInputs.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid input: {e}") from e


def parse_fetch_depth(value: int | str) -> int:
    """Fetch depth as a non-negative int; invalid values mean full history."""
    try:
        depth = int(value)
    except (TypeError, ValueError):
        logger.debug(f"Invalid fetch depth '{value}', fetching all history")
        return 0
    return max(0, depth)


def get_token(environ: Mapping[str, str]) -> str:
    for name in TOKEN_ENV_VARS:
        if environ.get(name):
            return environ[name]
    return ""


def read_pull_request_head_sha(environ: Mapping[str, str]) -> str | None:
    """Head SHA of the pull request in the triggering event payload, if any."""
    event_path = environ.get("GITHUB_EVENT_PATH")
    if not event_path:
        return None
    try:
        payload = json.loads(Path(event_path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.debug(f"Unable to read event payload '{event_path}': {e}")
        return None
    sha = (payload.get("pull_request") or {}).get("head", {}).get("sha")
    return sha or None


def build_settings(
    inputs: AcquisitionInputs,
    environ: Mapping[str, str] | None = None,
    token: str | None = None,
) -> AcquisitionSettings:
    """Apply defaults from the CI context and validate the inputs.

    Raises:
        ConfigurationError: If an input is invalid
    """
    environ = os.environ if environ is None else environ

    workspace = Path(environ.get("GITHUB_WORKSPACE") or Path.cwd()).resolve()
    workflow_repository = environ.get("GITHUB_REPOSITORY", "")

    # Repository
    qualified_repository = inputs.repository or workflow_repository
    logger.debug(f"qualified repository = '{qualified_repository}'")
    parts = qualified_repository.split("/") if qualified_repository else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ConfigurationError(
            f"Invalid repository '{qualified_repository}'. "
            "Expected format {owner}/{repo}."
        )
    owner, name = parts

    # Repository path
    repository_path = (workspace / inputs.path).resolve()
    if repository_path != workspace and workspace not in repository_path.parents:
        raise ConfigurationError(
            f"Repository path '{repository_path}' is not under '{workspace}'"
        )

    # The workflow repository defaults to the triggering ref and commit
    is_workflow_repository = qualified_repository.upper() == workflow_repository.upper()
    ref = inputs.ref
    commit = ""
    if not ref:
        if is_workflow_repository:
            ref = environ.get("GITHUB_REF", "")
            commit = environ.get("GITHUB_SHA", "")
            # Some events carry an unqualified branch name
            if ref and not ref.startswith("refs/"):
                ref = f"refs/heads/{ref}"
    logger.debug(f"ref = '{ref}'")
    logger.debug(f"commit = '{commit}'")

    try:
        submodules = SubmoduleMode.parse(inputs.submodules)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    server_url = inputs.server_url or environ.get("GITHUB_SERVER_URL") or "https://github.com"
    api_url = inputs.api_url
    if not api_url and not inputs.server_url:
        api_url = environ.get("GITHUB_API_URL") or None

    temp_dir = Path(environ.get("RUNNER_TEMP") or tempfile.gettempdir())

    try:
        return AcquisitionSettings(
            repository_owner=owner,
            repository_name=name,
            repository_path=repository_path,
            ref=ref,
            commit=commit,
            fetch_depth=parse_fetch_depth(inputs.fetch_depth),
            clean=inputs.clean,
            submodules=submodules,
            submodules_remote_branch=inputs.submodules_remote_branch or None,
            lfs=inputs.lfs,
            persist_credentials=inputs.persist_credentials,
            auth_token=token if token is not None else get_token(environ),
            ssh_key=inputs.ssh_key or None,
            ssh_known_hosts=inputs.ssh_known_hosts or None,
            ssh_strict=inputs.ssh_strict,
            server_url=server_url,
            api_url=api_url,
            temp_dir=temp_dir,
            pull_request_head_sha=read_pull_request_head_sha(environ),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e


def load_settings_from_env(environ: Mapping[str, str] | None = None) -> AcquisitionSettings:
    """Settings from ``REPOFETCH_*`` variables and the CI context."""
    environ = os.environ if environ is None else environ
    return build_settings(AcquisitionInputs.from_env(environ), environ)


def load_settings_from_yaml(
    path: Path, environ: Mapping[str, str] | None = None
) -> AcquisitionSettings:
    """Settings from a YAML file, with the token taken from the environment."""
    environ = os.environ if environ is None else environ
    return build_settings(AcquisitionInputs.from_yaml(path), environ)
