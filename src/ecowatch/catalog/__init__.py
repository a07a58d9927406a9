"""Project catalog, verdicts and persistence."""

from ecowatch.catalog.models import (
    Catalog,
    Project,
    RunReport,
    Verdict,
    VerdictKind,
)
from ecowatch.catalog.store import CatalogStore

__all__ = [
    "Catalog",
    "CatalogStore",
    "Project",
    "RunReport",
    "Verdict",
    "VerdictKind",
]
