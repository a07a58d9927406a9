"""Update command - discover new projects and refresh statistics."""

from pydantic import BaseModel, Field

from ecowatch.command.check import load_catalog, toolchain_spec
from ecowatch.core.errors import (
    DiscoveryError,
    PersistenceFailure,
    ToolchainNotFound,
)
from ecowatch.core.log import logger


class UpdateCommand(BaseModel):
    """Search GitHub for projects, add the new ones to the catalog,
    record toolchain download counts and save.

    Meant to be run periodically, for example from a weekly cron job.
    With --check the full check workflow runs on the grown catalog
    before it is saved.
    """

    check: bool = Field(
        default=False,
        description="Check every project after discovery",
    )
    downloads: bool = Field(
        default=True,
        description="Record release download counts",
    )

    async def run_workflow(self, state: "State") -> int:
        """Run update workflow.

        Args:
            state: State instance

        Returns:
            Exit code (0=success, 1=fatal error)
        """
        from ecowatch.workflow.graph import create_update_workflow, run_workflow
        from ecowatch.workflow.nodes.discover import Discover

        catalog = load_catalog(state)
        if catalog is None:
            return 1

        update = state.runtime.update
        update.catalog = catalog
        update.run_check = self.check
        update.record_downloads = self.downloads

        # The check workflow works on the same catalog object
        check = state.runtime.check
        check.catalog = catalog
        check.spec = toolchain_spec(state)

        try:
            await run_workflow(create_update_workflow(), Discover(), state)
        except DiscoveryError as e:
            update.status = "failed"
            logger.error("Discovery failed: {error}", error=str(e))
            return 1
        except ToolchainNotFound as e:
            update.status = "failed"
            logger.error("Toolchain not found: {error}", error=str(e))
            return 1
        except PersistenceFailure as e:
            update.status = "failed"
            logger.error("Cannot save catalog: {error}", error=str(e))
            return 1

        update.status = "complete"
        logger.info(
            "Update complete: {added} new projects, {total} total",
            added=len(update.added),
            total=len(catalog),
        )
        return 0
