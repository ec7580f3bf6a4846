"""GitHub REST API client.

Used when no git client is available (the repository is downloaded as a
tarball) and to look up the default branch of a repository.

API Documentation: https://docs.github.com/en/rest/repos
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tarfile
import tempfile
import uuid
from pathlib import Path
from typing import Any

import httpx

from repofetch import fs
from repofetch.errors import NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "repofetch"


class GitHubClient:
    """Minimal GitHub REST client."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: str = "",
        temp_dir: Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.temp_dir = temp_dir or Path(tempfile.gettempdir())
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=60.0,
                headers=self.get_auth_headers(),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def get_auth_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    async def _request(self, endpoint: str) -> httpx.Response:
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        return response

    async def get_repository(self, owner: str, name: str) -> dict[str, Any]:
        response = await self._request(f"repos/{owner}/{name}")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"Failed to get repository {owner}/{name}: HTTP {response.status_code}"
            ) from e
        return response.json()

    async def get_default_branch(self, owner: str, name: str) -> str:
        """Default branch of a repository as ``refs/heads/<branch>``."""
        logger.info("Retrieving the default branch name")
        try:
            data = await self.get_repository(owner, name)
            result = data.get("default_branch") or ""
            if not result:
                raise NetworkError(f"Repository {owner}/{name} has no default branch")
        except NetworkError as e:
            # Wikis are not served by the repos endpoint
            cause = e.__cause__
            if (
                isinstance(cause, httpx.HTTPStatusError)
                and cause.response.status_code == 404
                and name.upper().endswith(".WIKI")
            ):
                result = "master"
            else:
                raise

        logger.info(f"Default branch '{result}'")
        if not result.startswith("refs/"):
            result = f"refs/heads/{result}"
        return result

    async def download_archive(self, owner: str, name: str, ref: str) -> bytes:
        response = await self._request(f"repos/{owner}/{name}/tarball/{ref}")
        if response.status_code != 200:
            raise NetworkError(
                f"Unexpected response from GitHub API. Status: {response.status_code}"
            )
        return response.content

    async def download_repository(
        self,
        owner: str,
        name: str,
        ref: str,
        commit: str,
        repository_path: Path,
    ) -> None:
        """Download a tarball of ``commit`` (or ``ref``) into ``repository_path``."""
        if not ref and not commit:
            ref = await self.get_default_branch(owner, name)

        logger.info("Downloading the archive")
        archive_data = await self.download_archive(owner, name, commit or ref)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        unique_id = str(uuid.uuid4())
        archive_path = self.temp_dir / f"{unique_id}.tar.gz"
        extract_path = self.temp_dir / unique_id
        try:
            logger.info("Writing archive to disk")
            archive_path.write_bytes(archive_data)
            del archive_data

            logger.info("Extracting the archive")
            extract_path.mkdir(parents=True)
            await asyncio.to_thread(_extract_tarball, archive_path, extract_path)

            # The archive holds one top-level folder named after the short SHA
            entries = list(extract_path.iterdir())
            if len(entries) != 1 or not entries[0].is_dir():
                raise NetworkError("Expected exactly one directory inside archive")
            archive_version = entries[0].name
            logger.info(f"Resolved version {archive_version}")

            for child in entries[0].iterdir():
                target = repository_path / child.name
                fs.remove(target)
                shutil.move(str(child), str(target))
        finally:
            fs.remove(archive_path)
            fs.remove(extract_path)


def _extract_tarball(archive_path: Path, extract_path: Path) -> None:
    with tarfile.open(archive_path, "r:gz") as tar:
        tar.extractall(extract_path, filter="data")
