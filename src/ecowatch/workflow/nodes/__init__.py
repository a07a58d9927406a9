"""Workflow nodes for the check and update graphs."""

from ecowatch.workflow.nodes.check_projects import CheckProjects
from ecowatch.workflow.nodes.discover import Discover
from ecowatch.workflow.nodes.record_downloads import RecordDownloads
from ecowatch.workflow.nodes.report import Report
from ecowatch.workflow.nodes.resolve_toolchain import ResolveToolchain
from ecowatch.workflow.nodes.save_catalog import SaveCatalog

__all__ = [
    "CheckProjects",
    "Discover",
    "RecordDownloads",
    "Report",
    "ResolveToolchain",
    "SaveCatalog",
]
