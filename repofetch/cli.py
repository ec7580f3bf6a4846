"""CLI commands for repofetch."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from repofetch.acquire import cleanup as cleanup_repository
from repofetch.acquire import get_source
from repofetch.config import TOKEN_ENV_VARS, AcquisitionInputs, build_settings
from repofetch.console import configure_logging
from repofetch.console import console as log_console
from repofetch.errors import AcquisitionError
from repofetch.models.result import AcquisitionResult

console = Console()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug output")
def main(verbose: bool) -> None:
    """repofetch - Fetch a repository at a ref into a local directory."""
    configure_logging(verbose)


@main.command()
@click.option("--repository", "-r", default=None, help="Repository as owner/name")
@click.option("--ref", default=None, help="Branch, tag, SHA or fully qualified ref")
@click.option(
    "--token",
    envvar=list(TOKEN_ENV_VARS),
    default=None,
    show_envvar=True,
    help="Token used to fetch the repository",
)
@click.option("--ssh-key", default=None, help="SSH private key used to fetch the repository")
@click.option("--ssh-known-hosts", default=None, help="Known hosts in addition to the user's")
@click.option("--ssh-strict/--no-ssh-strict", default=None, help="Strict host key checking")
@click.option(
    "--persist-credentials/--no-persist-credentials",
    default=None,
    help="Keep credentials in the local git config after the run",
)
@click.option("--path", "-p", default=None, help="Path under the workspace to place the repository")
@click.option("--clean/--no-clean", default=None, help="Clean an existing working tree first")
@click.option("--fetch-depth", "-d", default=None, type=int, help="Commits to fetch, 0 for all")
@click.option("--lfs/--no-lfs", default=None, help="Fetch Git LFS objects")
@click.option(
    "--submodules",
    default=None,
    type=click.Choice(["true", "false", "recursive", "none", "shallow"], case_sensitive=False),
    help="Fetch submodules",
)
@click.option(
    "--submodules-remote-branch",
    default=None,
    help="Check out this branch in every submodule that has it",
)
@click.option(
    "--config",
    "config_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with the inputs",
)
def get(
    repository: str | None,
    ref: str | None,
    token: str | None,
    ssh_key: str | None,
    ssh_known_hosts: str | None,
    ssh_strict: bool | None,
    persist_credentials: bool | None,
    path: str | None,
    clean: bool | None,
    fetch_depth: int | None,
    lfs: bool | None,
    submodules: str | None,
    submodules_remote_branch: str | None,
    config_file: Path | None,
) -> None:
    """Fetch a repository into the workspace."""
    overrides: dict[str, Any] = {
        "repository": repository,
        "ref": ref,
        "ssh_key": ssh_key,
        "ssh_known_hosts": ssh_known_hosts,
        "ssh_strict": ssh_strict,
        "persist_credentials": persist_credentials,
        "path": path,
        "clean": clean,
        "fetch_depth": fetch_depth,
        "lfs": lfs,
        "submodules": submodules,
        "submodules_remote_branch": submodules_remote_branch,
    }

    try:
        if config_file:
            inputs = AcquisitionInputs.from_yaml(config_file)
        else:
            inputs = AcquisitionInputs.from_env(os.environ)
        inputs = inputs.model_copy(
            update={key: value for key, value in overrides.items() if value is not None}
        )
        settings = build_settings(inputs, os.environ, token=token)

        with log_console.status(f"Fetching {settings.qualified_repository}..."):
            result = asyncio.run(get_source(settings))
    except AcquisitionError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(1) from e

    print_result(result)


@main.command()
@click.argument(
    "repository_path",
    required=False,
    type=click.Path(file_okay=False, path_type=Path),
)
@click.option(
    "--temp-dir",
    envvar="RUNNER_TEMP",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Temporary directory used by the earlier run",
)
def cleanup(repository_path: Path | None, temp_dir: Path | None) -> None:
    """Remove credentials left in a repository by an earlier run."""
    try:
        removed = asyncio.run(cleanup_repository(repository_path, temp_dir=temp_dir))
    except AcquisitionError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(1) from e

    if removed:
        console.print("[green]Credentials removed[/green]")
    else:
        console.print("[yellow]Nothing to clean up[/yellow]")


def print_result(result: AcquisitionResult) -> None:
    table = Table(title="Repository")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Repository", result.repository)
    table.add_row("Path", str(result.repository_path))
    table.add_row("Method", result.method.value)
    table.add_row("Ref", result.ref or "-")
    table.add_row("Commit", result.commit or "-")
    if result.submodules_updated:
        table.add_row("Submodules on remote branch", ", ".join(result.submodules_updated))

    console.print(table)


if __name__ == "__main__":
    main()
