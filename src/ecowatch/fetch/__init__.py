"""Project checkout into temporary workspaces."""

from ecowatch.fetch.fetcher import ProjectFetcher, Workspace

__all__ = ["ProjectFetcher", "Workspace"]
