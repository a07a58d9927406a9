"""Discover ecosystem projects on GitHub through the GitHub CLI."""

from __future__ import annotations

import shlex
from collections.abc import Container, Iterator

from ecowatch.catalog.models import Project
from ecowatch.core.errors import DiscoveryError
from ecowatch.core.log import logger
from ecowatch.core.runner import Runner


class GithubDiscovery:
    """Finds repositories containing the ecosystem's manifest.

    Everything goes through `gh api` command templates, so pagination,
    authentication (GITHUB_TOKEN / GH_TOKEN) and rate limiting are the
    GitHub CLI's business.
    """

    def __init__(self, config, runner: Runner | None = None):
        self.config = config
        self.runner = runner or Runner()
        self.sources = 0

    def _gh(self, name: str, **params) -> str:
        command = self.config.command("github", name).format(
            **{key: shlex.quote(value) for key, value in params.items()}
        )
        result = self.runner.execute(
            command, timeout=self.config.discovery.timeout, check=False
        )
        if result.exited != 0:
            output = (result.stderr or result.stdout).strip()
            raise DiscoveryError(
                f"gh {name} failed: "
                f"{output.splitlines()[-1] if output else result.exited}"
            )
        return result.stdout

    def search(self) -> list[str]:
        """Return the ids of non-fork repositories matching the query.

        Raises:
            DiscoveryError: if the search itself fails
        """
        ids = []
        self.sources = 0
        output = self._gh("search", query=self.config.discovery.query)
        for line in output.splitlines():
            fields = line.split("\t")
            if not fields[0].strip():
                continue
            self.sources += 1
            full_name = fields[0].strip()
            fork = len(fields) > 1 and fields[1].strip() == "true"
            if not fork and full_name not in ids:
                ids.append(full_name)
        logger.info(
            "Search found {count} repositories in {sources} hits",
            count=len(ids),
            sources=self.sources,
        )
        return ids

    def candidates(self, known: Container[str] = ()) -> Iterator[Project]:
        """Lazily yield projects not in `known` and not excluded.

        A repository whose details cannot be fetched is skipped with a
        warning; it will be tried again by the next run.
        """
        exclude = set(self.config.discovery.exclude)
        for project_id in self.search():
            if project_id in known or project_id in exclude:
                continue
            try:
                fields = self._gh("repo", repo=project_id).strip().split("\t")
                project = Project.from_id(
                    project_id,
                    branch=fields[0] or "main",
                    url=fields[1] if len(fields) > 1 and fields[1] else None,
                )
            except (DiscoveryError, ValueError) as e:
                logger.warn(
                    "Skipping {project}: {error}",
                    project=project_id,
                    error=str(e),
                )
                continue
            logger.debug("Discovered {project}", project=project_id)
            yield project

    def releases(self) -> dict[str, dict[str, int]]:
        """Download counts of every release asset, keyed by version."""
        counts: dict[str, dict[str, int]] = {}
        output = self._gh("releases", repo=self.config.discovery.release_repo)
        for line in output.splitlines():
            fields = line.split("\t")
            if len(fields) != 3:
                continue
            release, asset, downloads = fields
            version = release.strip().removeprefix("v")
            try:
                count = int(downloads)
            except ValueError:
                logger.warn("Unparseable download count", line=line)
                continue
            counts.setdefault(version, {})[asset] = count
        return counts
