"""Exceptions raised by ecowatch.

Only failures that abort a run, or that the orchestrator turns into a
verdict, are exceptions. Compile failures, timeouts and a missing
toolchain during a single check are verdict kinds.
"""


class EcowatchError(Exception):
    """Base class for all ecowatch errors."""


class ToolchainNotFound(EcowatchError):
    """The requested toolchain cannot be located or installed.

    Fatal for the whole run: every check needs the same toolchain.
    """


class FetchFailure(EcowatchError):
    """A project could not be checked out."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class CatalogError(EcowatchError):
    """The catalog file exists but cannot be read or parsed."""


class PersistenceFailure(EcowatchError):
    """The updated catalog could not be written."""


class DiscoveryError(EcowatchError):
    """The discovery search itself failed."""
