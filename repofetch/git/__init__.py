"""Git client, credential and ref handling."""

from repofetch.git.auth import GitAuthHelper, credentials
from repofetch.git.command import (
    MINIMUM_GIT_LFS_VERSION,
    MINIMUM_GIT_VERSION,
    GitCommandManager,
    GitOutput,
    GitVersion,
    create_command_manager,
    get_command_manager,
)
from repofetch.git.directory import prepare_existing_directory

__all__ = [
    "GitAuthHelper",
    "GitCommandManager",
    "GitOutput",
    "GitVersion",
    "MINIMUM_GIT_LFS_VERSION",
    "MINIMUM_GIT_VERSION",
    "create_command_manager",
    "credentials",
    "get_command_manager",
    "prepare_existing_directory",
]
