"""RecordDownloads node - snapshot toolchain release download counts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from ecowatch.core.config import State
from ecowatch.core.errors import DiscoveryError
from ecowatch.core.log import logger
from ecowatch.discovery.github import GithubDiscovery
from ecowatch.workflow.nodes.discover import next_update_step


@dataclass
class RecordDownloads(BaseNode[State]):
    """Append a download snapshot for every release whose counts moved.

    Download statistics are secondary: a failed query is logged and
    the update carries on.
    """

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> "ResolveToolchain | SaveCatalog":
        catalog = ctx.state.runtime.update.catalog
        discovery = GithubDiscovery(ctx.state.config)

        try:
            releases = await asyncio.to_thread(discovery.releases)
        except DiscoveryError as e:
            logger.warn("Skipping download counts: {error}", error=str(e))
            return next_update_step(ctx.state)

        changed = [
            version
            for version, counts in releases.items()
            if catalog.record_downloads(version, counts)
        ]
        logger.info(
            "Recorded download counts for {count} releases",
            count=len(changed),
        )
        growth = catalog.download_growth()
        for version in changed:
            total, delta = growth[version]
            logger.info(
                "Release {version}: {total} downloads, {delta} new",
                version=version,
                total=total,
                delta=delta,
            )
        return next_update_step(ctx.state)
