"""SaveCatalog node - persist the catalog after an update."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from ecowatch.catalog.store import CatalogStore
from ecowatch.core.config import State
from ecowatch.core.log import logger


@dataclass
class SaveCatalog(BaseNode[State, None, None]):
    """Write the updated catalog."""

    async def run(self, ctx: GraphRunContext[State]) -> End[None]:
        update = ctx.state.runtime.update
        store = CatalogStore(ctx.state.config.catalog.path)
        await asyncio.to_thread(store.save, update.catalog)

        update.status = "complete"
        logger.info(
            "Catalog saved with {count} projects",
            count=len(update.catalog),
            path=str(store.path),
        )
        return End(None)
