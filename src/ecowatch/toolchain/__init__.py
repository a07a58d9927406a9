"""Toolchain resolution."""

from ecowatch.toolchain.resolver import ToolchainResolver

__all__ = ["ToolchainResolver"]
