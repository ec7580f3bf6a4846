"""Hosting service API providers."""

from repofetch.providers.github import GitHubClient

__all__ = ["GitHubClient"]
