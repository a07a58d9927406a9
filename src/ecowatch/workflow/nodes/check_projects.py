"""CheckProjects node - fetch and build every catalogued project."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from ecowatch.catalog.models import (
    Project,
    ResolvedToolchain,
    Verdict,
    VerdictKind,
    utcnow,
)
from ecowatch.catalog.store import CatalogStore
from ecowatch.check.checker import BuildChecker
from ecowatch.core.config import State
from ecowatch.core.errors import FetchFailure, PersistenceFailure
from ecowatch.core.log import logger
from ecowatch.fetch.fetcher import ProjectFetcher, Workspace


async def fetch_workspace(
    fetcher: ProjectFetcher, project: Project
) -> Workspace:
    """Clone a project in a worker thread.

    A cancelled await cannot stop the thread, so a workspace it hands
    back after cancellation is closed here instead of leaking.
    """
    lock = threading.Lock()
    fetched: list[Workspace] = []
    abandoned = False

    def fetch() -> Workspace:
        workspace = fetcher.fetch(project)
        with lock:
            if abandoned:
                workspace.close()
            else:
                fetched.append(workspace)
        return workspace

    try:
        return await asyncio.to_thread(fetch)
    except asyncio.CancelledError:
        with lock:
            abandoned = True
            for workspace in fetched:
                workspace.close()
        raise


async def check_project(
    project: Project,
    fetcher: ProjectFetcher,
    checker: BuildChecker,
    toolchain: ResolvedToolchain,
    timeout: float,
) -> Verdict:
    """Fetch and build one project, always producing a verdict.

    This is the isolation boundary: whatever goes wrong for this
    project becomes its verdict and never reaches the other projects.
    Cancellation is the only thing that propagates.
    """
    try:
        workspace = await fetch_workspace(fetcher, project)
    except FetchFailure as e:
        return Verdict(
            kind=VerdictKind.FETCH_FAILURE,
            detail=e.reason,
            toolchain_version=toolchain.version,
        )
    except Exception as e:
        logger.exception(
            "Unexpected error fetching {project}", project=project.id
        )
        return Verdict(
            kind=VerdictKind.INTERNAL_ERROR,
            detail=f"{type(e).__name__}: {e}",
            toolchain_version=toolchain.version,
        )

    try:
        return await checker.check(workspace, toolchain, timeout)
    except Exception as e:
        logger.exception(
            "Unexpected error checking {project}", project=project.id
        )
        return Verdict(
            kind=VerdictKind.INTERNAL_ERROR,
            detail=f"{type(e).__name__}: {e}",
            toolchain_version=toolchain.version,
            revision=workspace.revision,
        )


@dataclass
class CheckProjects(BaseNode[State]):
    """Check every project in catalog order.

    With check.jobs > 1 up to that many projects are in flight at once.
    Verdicts are written into the catalog one at a time under a lock;
    with catalog.checkpoint the catalog is also saved after each one.
    """

    async def run(self, ctx: GraphRunContext[State]) -> "Report":
        config = ctx.state.config
        check = ctx.state.runtime.check
        catalog = check.catalog
        toolchain = check.toolchain

        projects = list(catalog.projects)
        check.started_at = utcnow()
        check.previous = {p.id: p.verdict for p in projects}

        fetcher = ProjectFetcher(config)
        checker = BuildChecker(config)
        store = CatalogStore(config.catalog.path)
        semaphore = asyncio.Semaphore(config.check.jobs)
        lock = asyncio.Lock()
        slots: list[Verdict | None] = [None] * len(projects)

        logger.info(
            "Checking {count} projects with {jobs} job(s)",
            count=len(projects),
            jobs=config.check.jobs,
        )

        async def process(index: int, project: Project) -> None:
            async with semaphore:
                with logger.span("Checking {project}", project=project.id):
                    verdict = await check_project(
                        project, fetcher, checker, toolchain,
                        config.check.timeout,
                    )
                slots[index] = verdict
                self._log_verdict(project, verdict)

                async with lock:
                    catalog.record(
                        project.id, verdict, config.catalog.history_limit
                    )
                    if config.catalog.checkpoint:
                        await self._checkpoint(store, catalog)

        await asyncio.gather(
            *(process(i, project) for i, project in enumerate(projects))
        )

        check.verdicts = {
            project.id: verdict
            for project, verdict in zip(projects, slots, strict=True)
        }

        from ecowatch.workflow.nodes.report import Report
        return Report()

    @staticmethod
    def _log_verdict(project: Project, verdict: Verdict) -> None:
        if verdict.ok:
            logger.info(
                "{project}: {kind}",
                project=project.id,
                kind=verdict.kind.value,
                migrated=verdict.migrated,
            )
        else:
            lines = (verdict.detail or "").strip().splitlines()
            logger.warn(
                "{project}: {kind}",
                project=project.id,
                kind=verdict.kind.value,
                detail=lines[-1] if lines else "",
            )

    @staticmethod
    async def _checkpoint(store: CatalogStore, catalog) -> None:
        try:
            await asyncio.to_thread(store.save, catalog)
        except PersistenceFailure as e:
            logger.warn("Checkpoint failed: {error}", error=str(e))
