"""State persisted between the acquisition run and the later cleanup run."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_FILE_ENV = "REPOFETCH_STATE_FILE"
STATE_FILE_NAME = "repofetch-state.json"


def get_state_file(temp_dir: Path | None = None) -> Path:
    env_path = os.environ.get(STATE_FILE_ENV)
    if env_path:
        return Path(env_path)
    base = temp_dir or Path(os.environ.get("RUNNER_TEMP") or tempfile.gettempdir())
    return base / STATE_FILE_NAME


class StateStore:
    """Small JSON key/value store backed by a state file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_state_file()

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}

    def get(self, key: str) -> Any | None:
        return self.load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self.load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))

    @property
    def repository_path(self) -> Path | None:
        value = self.get("repository_path")
        return Path(value) if value else None

    def set_repository_path(self, path: Path) -> None:
        self.set("repository_path", str(path))

    @property
    def ssh_key_path(self) -> Path | None:
        value = self.get("ssh_key_path")
        return Path(value) if value else None

    def set_ssh_key_path(self, path: Path) -> None:
        self.set("ssh_key_path", str(path))

    @property
    def ssh_known_hosts_path(self) -> Path | None:
        value = self.get("ssh_known_hosts_path")
        return Path(value) if value else None

    def set_ssh_known_hosts_path(self, path: Path) -> None:
        self.set("ssh_known_hosts_path", str(path))
