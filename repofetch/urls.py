"""URL helpers for the hosting service."""

from __future__ import annotations

from urllib.parse import urlparse

from repofetch.models.settings import AcquisitionSettings

DEFAULT_SERVER_URL = "https://github.com"
DEFAULT_API_URL = "https://api.github.com"


def get_server_url(settings: AcquisitionSettings) -> str:
    """Server URL without a trailing slash."""
    return (settings.server_url or DEFAULT_SERVER_URL).rstrip("/")


def get_server_host(settings: AcquisitionSettings) -> str:
    return urlparse(get_server_url(settings)).hostname or "github.com"


def is_ghes(server_url: str) -> bool:
    """Check whether the server is an Enterprise Server install."""
    host = (urlparse(server_url).hostname or "").lower()
    if not host or host == "github.com":
        return False
    return not host.endswith(".ghe.com") and not host.endswith(".localhost")


def get_api_url(settings: AcquisitionSettings) -> str:
    """REST API base URL for the configured server."""
    if settings.api_url:
        return settings.api_url.rstrip("/")
    server_url = get_server_url(settings)
    if is_ghes(server_url):
        return f"{server_url}/api/v3"
    host = urlparse(server_url).hostname or ""
    if host.endswith(".ghe.com"):
        return f"https://api.{host}"
    return DEFAULT_API_URL


def get_fetch_url(settings: AcquisitionSettings) -> str:
    """URL the git client fetches from.

    SSH keys select the ``git@host:owner/name.git`` form, otherwise the
    HTTPS URL of the repository is used.
    """
    owner = settings.repository_owner
    name = settings.repository_name
    if settings.ssh_key:
        return f"git@{get_server_host(settings)}:{owner}/{name}.git"
    return f"{get_server_url(settings)}/{owner}/{name}"
