"""Acquisition settings model."""

from __future__ import annotations

import re
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_COMMIT_PATTERN = re.compile(r"^([0-9a-fA-F]{40}|[0-9a-fA-F]{64})$")


class SubmoduleMode(str, Enum):
    """How submodules are fetched."""

    NONE = "none"
    SHALLOW = "shallow"  # Top-level submodules only
    RECURSIVE = "recursive"

    @classmethod
    def parse(cls, value: str | bool | None) -> "SubmoduleMode":
        """Parse the accepted input forms (true/false/recursive/none/shallow)."""
        if value is None or value is False:
            return cls.NONE
        if value is True:
            return cls.SHALLOW
        text = str(value).strip().lower()
        if text in ("", "false", "none"):
            return cls.NONE
        if text in ("true", "shallow"):
            return cls.SHALLOW
        if text == "recursive":
            return cls.RECURSIVE
        raise ValueError(f"Invalid submodules value '{value}'")


class AcquisitionSettings(BaseModel):
    """Immutable request describing what to fetch and where to put it."""

    model_config = ConfigDict(frozen=True)

    repository_owner: str = Field(..., description="Repository owner or organization")
    repository_name: str = Field(..., description="Repository name")
    repository_path: Path = Field(..., description="Local directory for the working copy")
    ref: str = Field(default="", description="Branch, tag or fully qualified ref")
    commit: str = Field(default="", description="Commit SHA to check out")
    fetch_depth: int = Field(default=1, description="Number of commits to fetch, 0 for all history")
    clean: bool = Field(default=True, description="Clean an existing working tree before fetching")
    submodules: SubmoduleMode = Field(default=SubmoduleMode.NONE)
    submodules_remote_branch: str | None = Field(
        default=None, description="Branch to check out in submodules that have it"
    )
    lfs: bool = Field(default=False, description="Fetch Git LFS objects")
    persist_credentials: bool = Field(default=True)
    auth_token: str = Field(default="", repr=False)
    ssh_key: str | None = Field(default=None, repr=False)
    ssh_known_hosts: str | None = Field(default=None)
    ssh_strict: bool = Field(default=True)
    server_url: str = Field(default="https://github.com")
    api_url: str | None = Field(default=None)
    temp_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    pull_request_head_sha: str | None = Field(
        default=None, description="Head commit expected inside a pull request merge commit"
    )

    @model_validator(mode="before")
    @classmethod
    def _ref_to_commit(cls, data: Any) -> Any:
        # A full SHA passed as the ref is fetched as a commit
        if isinstance(data, dict) and not data.get("commit"):
            ref = data.get("ref")
            if isinstance(ref, str) and _COMMIT_PATTERN.match(ref):
                data = {**data, "ref": "", "commit": ref.lower()}
        return data

    @field_validator("fetch_depth")
    @classmethod
    def _normalize_depth(cls, value: int) -> int:
        return max(0, value)

    @field_validator("submodules", mode="before")
    @classmethod
    def _parse_submodules(cls, value: object) -> SubmoduleMode:
        if isinstance(value, SubmoduleMode):
            return value
        return SubmoduleMode.parse(value)  # type: ignore[arg-type]

    @property
    def qualified_repository(self) -> str:
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def fetch_submodules(self) -> bool:
        return self.submodules != SubmoduleMode.NONE

    @property
    def nested_submodules(self) -> bool:
        return self.submodules == SubmoduleMode.RECURSIVE

    @property
    def full_history(self) -> bool:
        """True when the whole history is fetched."""
        return self.fetch_depth <= 0

    def with_ref(self, ref: str) -> "AcquisitionSettings":
        """Return a copy of these settings targeting ``ref``."""
        return self.model_copy(update={"ref": ref})
