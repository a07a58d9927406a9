"""Catalog data model: projects, verdicts and run reports."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

CATALOG_VERSION = 1

_ID_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


def utcnow() -> datetime:
    return datetime.now(UTC)


class VerdictKind(str, Enum):
    """Classification of one project check."""

    SUCCESS = "success"
    COMPILE_FAILURE = "compile_failure"
    FETCH_FAILURE = "fetch_failure"
    TIMEOUT = "timeout"
    TOOLCHAIN_MISSING = "toolchain_missing"
    INTERNAL_ERROR = "internal_error"


class Verdict(BaseModel):
    """Outcome of checking one project."""

    kind: VerdictKind
    detail: str | None = Field(
        default=None,
        description="Truncated diagnostic text or failure reason",
    )
    toolchain_version: str | None = None
    revision: str | None = Field(
        default=None, description="Commit that was checked"
    )
    checked_at: datetime = Field(default_factory=utcnow)
    migrated: bool = Field(
        default=False,
        description="The build only passed after running migrate",
    )
    duration: float | None = Field(
        default=None, description="Seconds spent in the toolchain"
    )

    @property
    def ok(self) -> bool:
        return self.kind is VerdictKind.SUCCESS

    def same_outcome(self, other: Verdict | None) -> bool:
        """Compare the classification and diagnostic, ignoring timing."""
        return (
            other is not None
            and self.kind is other.kind
            and self.detail == other.detail
        )


class BuildLog(BaseModel):
    """One historical check of a project."""

    revision: str | None = None
    toolchain_version: str | None = None
    kind: VerdictKind
    checked_at: datetime


class Project(BaseModel):
    """A catalogued repository and its last known status."""

    owner: str
    name: str
    branch: str = "main"
    url: str | None = Field(
        default=None,
        description="Clone URL; GitHub HTTPS URL when unset",
    )
    last_checked: datetime | None = None
    verdict: Verdict | None = None
    history: list[BuildLog] = Field(default_factory=list)

    @field_validator("owner", "name")
    @classmethod
    def _valid_part(cls, value: str) -> str:
        if not _ID_PART.match(value):
            raise ValueError(f"invalid repository identifier part: {value!r}")
        return value

    @classmethod
    def from_id(cls, project_id: str, **kwargs) -> Project:
        """Build a project from an 'owner/name' string."""
        owner, sep, name = project_id.strip().partition("/")
        if not sep or "/" in name:
            raise ValueError(f"expected 'owner/name', got {project_id!r}")
        return cls(owner=owner, name=name, **kwargs)

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def clone_url(self) -> str:
        return self.url or f"https://github.com/{self.id}.git"


class Discovery(BaseModel):
    """Record of one discovery pass."""

    date: datetime = Field(default_factory=utcnow)
    sources: int = Field(default=0, description="Search hits inspected")
    projects: list[str] = Field(
        default_factory=list, description="Ids added by this pass"
    )


class DownloadSnapshot(BaseModel):
    """Release asset download counts at one point in time."""

    date: datetime = Field(default_factory=utcnow)
    counts: dict[str, int] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class Catalog(BaseModel):
    """Ordered set of projects keyed by id.

    Insertion order is kept so the saved document diffs cleanly from
    run to run.
    """

    version: int = CATALOG_VERSION
    projects: list[Project] = Field(default_factory=list)
    discovered: list[Discovery] = Field(default_factory=list)
    downloads: dict[str, list[DownloadSnapshot]] = Field(
        default_factory=dict
    )

    @field_validator("projects")
    @classmethod
    def _unique_ids(cls, projects: list[Project]) -> list[Project]:
        seen = set()
        for project in projects:
            if project.id in seen:
                raise ValueError(f"duplicate project {project.id}")
            seen.add(project.id)
        return projects

    def __len__(self) -> int:
        return len(self.projects)

    def __contains__(self, project_id: str) -> bool:
        return self.get(project_id) is not None

    def ids(self) -> list[str]:
        return [project.id for project in self.projects]

    def get(self, project_id: str) -> Project | None:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def add(self, project: Project) -> bool:
        """Append a project unless its id is already present.

        Returns:
            True when the project was added
        """
        if project.id in self:
            return False
        self.projects.append(project)
        return True

    def merge(self, candidates: Iterable[Project]) -> list[Project]:
        """Add every candidate not already catalogued.

        Existing entries, and their status, are left untouched.
        """
        return [project for project in candidates if self.add(project)]

    def record(
        self, project_id: str, verdict: Verdict, history_limit: int = 20
    ) -> None:
        """Attach a verdict to one project and append it to its history."""
        project = self.get(project_id)
        if project is None:
            raise KeyError(project_id)
        project.verdict = verdict
        project.last_checked = verdict.checked_at
        if history_limit:
            project.history.append(BuildLog(
                revision=verdict.revision,
                toolchain_version=verdict.toolchain_version,
                kind=verdict.kind,
                checked_at=verdict.checked_at,
            ))
            del project.history[:-history_limit]

    def record_downloads(
        self, version: str, counts: dict[str, int], date: datetime | None = None
    ) -> bool:
        """Append a download snapshot when the counts changed.

        Returns:
            True when a snapshot was appended
        """
        snapshots = self.downloads.setdefault(version, [])
        if snapshots and snapshots[-1].counts == counts:
            return False
        snapshots.append(DownloadSnapshot(date=date or utcnow(), counts=counts))
        return True

    def download_growth(self) -> dict[str, tuple[int, int]]:
        """Latest total downloads per release and the change since the
        snapshot before it (the whole total for a first snapshot)."""
        growth = {}
        for version, snapshots in self.downloads.items():
            if not snapshots:
                continue
            total = snapshots[-1].total
            before = snapshots[-2].total if len(snapshots) > 1 else 0
            growth[version] = (total, total - before)
        return growth


class ToolchainSpec(BaseModel):
    """Requested toolchain: pinned version, explicit executable, or the
    ambient installation when neither is set."""

    version: str | None = None
    executable: Path | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def ambient(self) -> bool:
        return self.version is None and self.executable is None

    def __str__(self) -> str:
        if self.executable is not None:
            return str(self.executable)
        return self.version or "ambient"


class ResolvedToolchain(BaseModel):
    """Toolchain located for a run, shared read-only by all checks."""

    executable: Path
    version: str
    args: tuple[str, ...] = Field(
        default=(),
        description="Arguments placed before every subcommand",
    )

    model_config = ConfigDict(frozen=True)

    def argv(self, *rest: str) -> list[str]:
        return [str(self.executable), *self.args, *rest]


class RunReport(BaseModel):
    """Aggregate of one check run."""

    toolchain_version: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    verdicts: dict[str, Verdict] = Field(default_factory=dict)
    regressions: list[str] = Field(
        default_factory=list,
        description="Projects that succeeded before and fail now",
    )
    fixes: list[str] = Field(
        default_factory=list,
        description="Projects that failed before and succeed now",
    )

    @classmethod
    def build(
        cls,
        previous: dict[str, Verdict | None],
        verdicts: dict[str, Verdict],
        **kwargs,
    ) -> RunReport:
        """Diff new verdicts against the statuses stored before the run."""
        report = cls(verdicts=dict(verdicts), **kwargs)
        for project_id, verdict in verdicts.items():
            before = previous.get(project_id)
            if before is None:
                continue
            if before.ok and not verdict.ok:
                report.regressions.append(project_id)
            elif not before.ok and verdict.ok:
                report.fixes.append(project_id)
        return report

    @property
    def counts(self) -> dict[VerdictKind, int]:
        counts = dict.fromkeys(VerdictKind, 0)
        for verdict in self.verdicts.values():
            counts[verdict.kind] += 1
        return counts

    def summary(self) -> str:
        lines = [
            f"Checked {len(self.verdicts)} projects"
            + (f" with toolchain {self.toolchain_version}"
               if self.toolchain_version else "")
        ]
        lines.extend(
            f"  {kind.value}: {count}"
            for kind, count in self.counts.items()
            if count
        )
        if self.regressions:
            lines.append("Newly broken: " + ", ".join(self.regressions))
        if self.fixes:
            lines.append("Newly fixed: " + ", ".join(self.fixes))
        return "\n".join(lines)
