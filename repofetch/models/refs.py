"""Resolved checkout targets and commit metadata."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Format understood by CommitInfo.parse
COMMIT_INFO_FORMAT = "%H%n%P%n%s"


class CheckoutInfo(BaseModel):
    """Ref to check out, with an optional start point used to create it."""

    model_config = ConfigDict(frozen=True)

    ref: str
    start_point: str = ""

    @property
    def target(self) -> str:
        """The ref whose content ends up in the working tree."""
        return self.start_point or self.ref


class CommitInfo(BaseModel):
    """Metadata of the checked-out commit."""

    model_config = ConfigDict(frozen=True)

    sha: str
    parents: list[str] = Field(default_factory=list)
    subject: str = ""

    @classmethod
    def parse(cls, output: str) -> "CommitInfo":
        """Parse ``git log -1 --format=%H%n%P%n%s`` output."""
        lines = output.strip("\n").split("\n")
        sha = lines[0].strip() if lines else ""
        parents = lines[1].split() if len(lines) > 1 else []
        subject = lines[2].strip() if len(lines) > 2 else ""
        return cls(sha=sha, parents=parents, subject=subject)

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1
