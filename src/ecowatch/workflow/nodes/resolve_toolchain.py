"""ResolveToolchain node - locate the toolchain shared by every check."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from ecowatch.core.config import State
from ecowatch.toolchain.resolver import ToolchainResolver


@dataclass
class ResolveToolchain(BaseNode[State]):
    """Resolve the requested toolchain once, before any project.

    ToolchainNotFound is not caught: without a toolchain there is
    nothing to check, so the run stops here and the catalog on disk
    is left as it was.
    """

    async def run(self, ctx: GraphRunContext[State]) -> "CheckProjects":
        check = ctx.state.runtime.check
        check.status = "running"

        resolver = ToolchainResolver(ctx.state.config)
        check.toolchain = await asyncio.to_thread(resolver.resolve, check.spec)

        from ecowatch.workflow.nodes.check_projects import CheckProjects
        return CheckProjects()
