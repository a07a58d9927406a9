"""Graph workflow definitions."""

from pydantic_graph import BaseNode, End, Graph

from ecowatch.core.config import State
from ecowatch.core.log import logger


def create_check_workflow():
    """Create the check workflow graph.

    ResolveToolchain → CheckProjects → Report

    Returns:
        Graph workflow with State as state_type
    """
    logger.debug("Building check workflow graph")

    # Import nodes (lazy to avoid circular imports)
    from ecowatch.workflow.nodes.check_projects import CheckProjects
    from ecowatch.workflow.nodes.report import Report
    from ecowatch.workflow.nodes.resolve_toolchain import ResolveToolchain

    return Graph(
        nodes=(ResolveToolchain, CheckProjects, Report),
        state_type=State,
    )


def create_update_workflow():
    """Create the update workflow graph.

    Discover → [RecordDownloads] → SaveCatalog, or, when a check
    follows, → ResolveToolchain → CheckProjects → Report.

    Returns:
        Graph workflow with State as state_type
    """
    logger.debug("Building update workflow graph")

    from ecowatch.workflow.nodes.check_projects import CheckProjects
    from ecowatch.workflow.nodes.discover import Discover
    from ecowatch.workflow.nodes.record_downloads import RecordDownloads
    from ecowatch.workflow.nodes.report import Report
    from ecowatch.workflow.nodes.resolve_toolchain import ResolveToolchain
    from ecowatch.workflow.nodes.save_catalog import SaveCatalog

    return Graph(
        nodes=(
            Discover,
            RecordDownloads,
            SaveCatalog,
            ResolveToolchain,
            CheckProjects,
            Report,
        ),
        state_type=State,
    )


async def run_workflow(graph: Graph, start: BaseNode, state: State):
    """Drive a graph to completion and return the End node's data."""
    async with graph.iter(start, state=state) as run:
        async for node in run:
            if isinstance(node, End):
                return node.data
    return None
