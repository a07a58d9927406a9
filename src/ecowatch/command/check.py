"""Check command - build every catalogued project with one toolchain."""

from pathlib import Path

from pydantic import BaseModel, Field

from ecowatch.catalog.models import ToolchainSpec
from ecowatch.catalog.store import CatalogStore
from ecowatch.core.errors import (
    CatalogError,
    PersistenceFailure,
    ToolchainNotFound,
)
from ecowatch.core.log import logger


def load_catalog(state: "State"):
    """Load the configured catalog, or log why it cannot be loaded.

    Returns:
        The catalog, or None after logging a CatalogError
    """
    store = CatalogStore(state.config.catalog.path)
    try:
        return store.load()
    except CatalogError as e:
        logger.error("{error}", error=str(e))
        return None


def toolchain_spec(
    state: "State",
    version: str | None = None,
    executable: Path | None = None,
) -> ToolchainSpec:
    """Requested toolchain: command line values win over configuration."""
    toolchain = state.config.toolchain
    if version is None and executable is None:
        version = toolchain.version
        executable = toolchain.path
    return ToolchainSpec(version=version, executable=executable)


async def run_check(state: "State") -> int:
    """Run the check workflow on runtime.check and map fatal errors to
    an exit code."""
    from ecowatch.workflow.graph import create_check_workflow, run_workflow
    from ecowatch.workflow.nodes.resolve_toolchain import ResolveToolchain

    check = state.runtime.check
    logger.info(
        "Checking {count} projects against toolchain {spec}",
        count=len(check.catalog),
        spec=str(check.spec),
    )

    try:
        report = await run_workflow(
            create_check_workflow(), ResolveToolchain(), state
        )
    except ToolchainNotFound as e:
        check.status = "failed"
        logger.error("Toolchain not found: {error}", error=str(e))
        return 1
    except PersistenceFailure as e:
        check.status = "failed"
        logger.error("Cannot save catalog: {error}", error=str(e))
        return 1

    check.report = report
    return 0


class CheckCommand(BaseModel):
    """Fetch and build every project in the catalog with one toolchain
    version, record a verdict per project and report what changed.

    Failing projects do not fail the run; the exit status is non-zero
    only when the toolchain cannot be found or the catalog cannot be
    read or written.
    """

    toolchain_version: str | None = Field(
        default=None,
        alias="toolchain-version",
        description=(
            "Toolchain version to install and use "
            "(default: config.toolchain.version, else the one on PATH)"
        ),
    )
    executable: Path | None = Field(
        default=None,
        description="Use this toolchain executable, e.g. a local build",
    )
    compare: bool | None = Field(
        default=None,
        description=(
            "Check generated output against the committed one instead "
            "of building"
        ),
    )
    jobs: int | None = Field(
        default=None,
        ge=1,
        description="Projects checked concurrently (default: config)",
    )

    async def run_workflow(self, state: "State") -> int:
        """Run check workflow.

        Args:
            state: State instance

        Returns:
            Exit code (0=run completed, 1=fatal error)
        """
        if self.compare is not None:
            state.config.check.compare = self.compare
        if self.jobs is not None:
            state.config.check.jobs = self.jobs

        catalog = load_catalog(state)
        if catalog is None:
            return 1

        check = state.runtime.check
        check.catalog = catalog
        check.spec = toolchain_spec(
            state, self.toolchain_version, self.executable
        )
        return await run_check(state)
