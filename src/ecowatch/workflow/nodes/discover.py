"""Discover node - grow the catalog with newly found projects."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from ecowatch.catalog.models import Discovery
from ecowatch.core.config import State
from ecowatch.core.log import logger
from ecowatch.discovery.github import GithubDiscovery


def next_update_step(state: State):
    """Node following discovery: downloads, then checks, then saving."""
    from ecowatch.workflow.nodes.resolve_toolchain import ResolveToolchain
    from ecowatch.workflow.nodes.save_catalog import SaveCatalog

    if state.runtime.update.run_check:
        return ResolveToolchain()
    return SaveCatalog()


@dataclass
class Discover(BaseNode[State]):
    """Add every discovered project whose id is not yet catalogued.

    Existing entries keep their branch and status. A failing search
    raises DiscoveryError and nothing is saved.
    """

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> "RecordDownloads | ResolveToolchain | SaveCatalog":
        update = ctx.state.runtime.update
        catalog = update.catalog
        update.status = "running"

        discovery = GithubDiscovery(ctx.state.config)
        added = await asyncio.to_thread(
            lambda: catalog.merge(discovery.candidates(known=catalog))
        )

        update.added = [project.id for project in added]
        update.sources = discovery.sources
        catalog.discovered.append(
            Discovery(sources=discovery.sources, projects=update.added)
        )
        logger.info(
            "Discovery added {count} projects",
            count=len(added),
            projects=update.added,
        )

        if update.record_downloads:
            from ecowatch.workflow.nodes.record_downloads import (
                RecordDownloads,
            )
            return RecordDownloads()
        return next_update_step(ctx.state)
