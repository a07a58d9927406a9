"""Build checking."""

from ecowatch.check.checker import BuildChecker

__all__ = ["BuildChecker"]
