#!/usr/bin/env python3
"""Ecowatch CLI - build-check the Veryl project ecosystem."""

import asyncio
import contextlib

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from ecowatch.command.check import CheckCommand
from ecowatch.command.update import UpdateCommand
from ecowatch.core.config import State
from ecowatch.core.log import logger


class CliState(State):
    """Build every known Veryl project with a given toolchain version
    and report which ones fail, and which changed since the last run.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.check.timeout 900)
    2. ecowatch.yaml in the current directory and --include files
    3. .env file
    4. Environment variables (ECOWATCH_CONFIG__CHECK__TIMEOUT=900)

    The [JSON] options allow setting multiple values at once:
      --config.check '{"timeout": 900, "jobs": 4}'
    """

    check: CliSubCommand[CheckCommand]
    update: CliSubCommand[UpdateCommand]

    def cli_cmd(self):
        """Dispatch to active subcommand, or show help if none
        provided."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            # argparse exits 0 after printing help
            with contextlib.suppress(SystemExit):
                CliApp.run(CliState, cli_args=["--help"])
            raise SystemExit(1)

        # Closing the logger flushes and releases the log file
        with logger:
            exit_code = asyncio.run(subcommand.run_workflow(self))
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
