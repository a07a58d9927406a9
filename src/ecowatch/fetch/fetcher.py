"""Check out projects into temporary workspaces."""

from __future__ import annotations

import re
import shlex
import shutil
import tempfile
from pathlib import Path

from ecowatch.catalog.models import Project
from ecowatch.core.errors import FetchFailure
from ecowatch.core.log import logger
from ecowatch.core.runner import Runner

# Git must fail instead of waiting for credentials on a private or
# deleted repository
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "true"}

_REASONS = (
    (re.compile(r"remote branch .* not found|couldn't find remote ref", re.I),
     "branch not found"),
    (re.compile(r"not found|does not exist", re.I),
     "repository not found"),
    (re.compile(r"authentication|could not read username|403|rate limit",
                re.I),
     "authentication or rate limit rejection"),
    (re.compile(r"could not resolve host|unable to access|timed out|"
                r"connection|network", re.I),
     "network unreachable"),
)


def classify_git_error(output: str) -> str:
    """Reduce git's stderr to a short failure reason."""
    for pattern, reason in _REASONS:
        if pattern.search(output):
            return reason
    lines = [line for line in output.strip().splitlines() if line.strip()]
    return lines[-1] if lines else "git failed without output"


class Workspace:
    """A temporary checkout of one project.

    `root` is the directory allocated for the checkout and removed by
    close(); `path` is the source tree inside it. Closing twice is
    harmless. Usable as a context manager.
    """

    def __init__(
        self,
        root: Path,
        project_id: str,
        path: Path | None = None,
        revision: str | None = None,
    ):
        self.root = Path(root)
        self.path = Path(path) if path is not None else self.root
        self.project_id = project_id
        self.revision = revision

    @property
    def closed(self) -> bool:
        return not self.root.exists()

    def close(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root, ignore_errors=True)
            logger.spew("Removed workspace", path=str(self.root))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False

    def __repr__(self) -> str:
        return f"Workspace({self.project_id!r}, {str(self.root)!r})"


class ProjectFetcher:
    """Clones the tip of a project's branch into a fresh workspace.

    Each call allocates its own directory and touches no shared state,
    so fetches of different projects may run concurrently.
    """

    def __init__(self, config, runner: Runner | None = None):
        self.config = config
        self.runner = runner or Runner()

    def fetch(self, project: Project) -> Workspace:
        """Clone a project.

        Raises:
            FetchFailure: with a short reason; the partial checkout has
                already been removed
        """
        work_root = Path(self.config.fetch.work_root)
        work_root.mkdir(parents=True, exist_ok=True)
        prefix = re.sub(r"[^A-Za-z0-9_.-]", "_", project.id.replace("/", "__"))
        root = Path(tempfile.mkdtemp(prefix=f"{prefix}-", dir=work_root))
        workspace = Workspace(root, project.id, path=root / "src")

        try:
            result = self.runner.execute(
                self.config.command("git", "clone").format(
                    branch=shlex.quote(project.branch),
                    url=shlex.quote(project.clone_url),
                    dest=shlex.quote(str(workspace.path)),
                ),
                timeout=self.config.fetch.timeout,
                check=False,
                env=GIT_ENV,
            )
            if result.exited == -1:
                raise FetchFailure(
                    f"clone timed out after {self.config.fetch.timeout}s"
                )
            if result.exited != 0:
                raise FetchFailure(classify_git_error(result.stderr))

            rev = self.runner.execute(
                self.config.command("git", "rev_parse"),
                cwd=workspace.path,
                check=False,
                env=GIT_ENV,
            )
            if rev.exited == 0:
                workspace.revision = rev.stdout.strip() or None
        except BaseException:
            workspace.close()
            raise

        logger.debug(
            "Fetched {project} at {revision}",
            project=project.id,
            revision=workspace.revision,
        )
        return workspace
