"""Report node - summarize the run and persist the catalog."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from ecowatch.catalog.models import RunReport, VerdictKind, utcnow
from ecowatch.catalog.store import CatalogStore
from ecowatch.core.config import State
from ecowatch.core.log import logger


@dataclass
class Report(BaseNode[State, None, RunReport]):
    """Diff the new verdicts against the old ones and save the catalog.

    The summary is logged before saving, so a PersistenceFailure still
    leaves the results of the run visible.
    """

    async def run(self, ctx: GraphRunContext[State]) -> End[RunReport]:
        check = ctx.state.runtime.check
        toolchain = check.toolchain

        report = RunReport.build(
            check.previous,
            check.verdicts,
            toolchain_version=toolchain.version if toolchain else None,
            started_at=check.started_at or utcnow(),
            finished_at=utcnow(),
        )
        check.report = report

        for project_id, verdict in report.verdicts.items():
            if verdict.kind is VerdictKind.COMPILE_FAILURE:
                logger.debug(
                    "Diagnostics for {project}:\n{detail}",
                    project=project_id,
                    detail=verdict.detail,
                )
        for line in report.summary().splitlines():
            logger.info("{line}", line=line)

        store = CatalogStore(ctx.state.config.catalog.path)
        await asyncio.to_thread(store.save, check.catalog)
        check.status = "complete"
        return End(report)
