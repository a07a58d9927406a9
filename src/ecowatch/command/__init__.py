"""CLI command modules for ecowatch."""

from ecowatch.command.check import CheckCommand
from ecowatch.command.update import UpdateCommand

__all__ = ["CheckCommand", "UpdateCommand"]
