"""Filesystem helpers used while preparing the repository directory."""

from __future__ import annotations

import shutil
from pathlib import Path


def directory_exists(path: Path) -> bool:
    return path.is_dir()


def file_exists(path: Path) -> bool:
    """Check for an existing path that is not a directory."""
    return path.exists() and not path.is_dir()


def existence(path: Path) -> bool:
    """Check for any entry at ``path``, including a dangling symlink."""
    return path.exists() or path.is_symlink()


def make_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def remove(path: Path) -> None:
    """Remove a file, symlink or directory tree. Missing paths are ignored."""
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.is_dir():
        shutil.rmtree(path)


def empty_directory(path: Path) -> None:
    """Delete the contents of a directory but keep the directory itself.

    The directory may be the current working directory of the caller.
    """
    for child in path.iterdir():
        remove(child)
