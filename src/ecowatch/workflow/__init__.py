"""Workflow graphs for checking and updating the catalog."""

from ecowatch.workflow.graph import (
    create_check_workflow,
    create_update_workflow,
    run_workflow,
)

__all__ = ["create_check_workflow", "create_update_workflow", "run_workflow"]
