"""Outcome of an acquisition."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class AcquisitionMethod(str, Enum):
    """How the working copy was obtained."""

    GIT = "git"  # Native git client
    ARCHIVE = "archive"  # REST API tarball download


class AcquisitionResult(BaseModel):
    """Summary of a completed acquisition."""

    method: AcquisitionMethod
    repository: str = Field(..., description="owner/name")
    repository_path: Path
    ref: str = Field(default="", description="Ref that was checked out")
    commit: str = Field(default="", description="Checked-out commit, when known")
    submodules_updated: list[str] = Field(default_factory=list)
