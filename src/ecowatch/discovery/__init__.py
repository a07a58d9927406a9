"""Project discovery."""

from ecowatch.discovery.github import GithubDiscovery

__all__ = ["GithubDiscovery"]
