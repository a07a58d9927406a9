"""Locate, and when pinned install, the toolchain for a run."""

from __future__ import annotations

import os
import re
import shlex
import shutil
from pathlib import Path

from ecowatch.catalog.models import ResolvedToolchain, ToolchainSpec
from ecowatch.core.errors import ToolchainNotFound
from ecowatch.core.log import logger
from ecowatch.core.runner import Runner

UNKNOWN_VERSION = "unknown"


class ToolchainResolver:
    """Turns a ToolchainSpec into a ResolvedToolchain.

    Three ways to get a toolchain:

    - explicit executable: used as given, it only has to exist
    - pinned version: installed through the version manager unless it
      is already installed, then selected with toolchain.version_arg
    - ambient: whatever the toolchain executable on PATH is

    Every failure raises ToolchainNotFound; nothing here retries.
    """

    def __init__(self, config, runner: Runner | None = None):
        self.config = config
        self.runner = runner or Runner()

    def resolve(self, spec: ToolchainSpec) -> ResolvedToolchain:
        with logger.span("Resolving toolchain", spec=str(spec)):
            if spec.executable is not None:
                toolchain = self._explicit(spec.executable)
            elif spec.version is not None:
                toolchain = self._pinned(spec.version)
            else:
                toolchain = self._ambient()

        logger.info(
            "Using toolchain {version} at {executable}",
            version=toolchain.version,
            executable=str(toolchain.executable),
        )
        return toolchain

    def _explicit(self, executable: Path) -> ResolvedToolchain:
        path = Path(executable).expanduser().resolve()
        if not path.is_file() or not os.access(path, os.X_OK):
            raise ToolchainNotFound(f"{path} is not an executable file")
        return ResolvedToolchain(
            executable=path, version=self.probe_version(path)
        )

    def _ambient(self) -> ResolvedToolchain:
        path = self._locate()
        return ResolvedToolchain(
            executable=path, version=self.probe_version(path)
        )

    def _pinned(self, version: str) -> ResolvedToolchain:
        manager = self.config.toolchain.version_manager
        if shutil.which(manager) is None:
            raise ToolchainNotFound(
                f"Version manager '{manager}' not found on PATH; "
                f"cannot provide toolchain {version}"
            )

        if self.is_installed(version):
            logger.debug("Toolchain already installed", version=version)
        else:
            self.install(version)

        args = (self.config.toolchain.version_arg.format(version=version),)
        return ResolvedToolchain(
            executable=self._locate(), version=version, args=args
        )

    def _locate(self) -> Path:
        name = self.config.toolchain.executable
        found = shutil.which(name)
        if found is None:
            raise ToolchainNotFound(f"'{name}' not found on PATH")
        return Path(found).resolve()

    def is_installed(self, version: str) -> bool:
        """Ask the version manager whether a version is installed."""
        result = self.runner.execute(
            self.config.command("version_manager", "list").format(
                manager=shlex.quote(self.config.toolchain.version_manager)
            ),
            timeout=self.config.toolchain.probe_timeout,
            check=False,
        )
        if result.exited != 0:
            return False
        pattern = rf"(?<![\w.]){re.escape(version)}(?![\w.])"
        return re.search(pattern, result.stdout) is not None

    def install(self, version: str) -> None:
        """Install a version through the version manager.

        Raises:
            ToolchainNotFound: if the manager fails or times out
        """
        logger.info("Installing toolchain {version}", version=version)
        result = self.runner.execute(
            self.config.command("version_manager", "install").format(
                manager=shlex.quote(self.config.toolchain.version_manager),
                version=shlex.quote(version),
            ),
            timeout=self.config.toolchain.install_timeout,
            check=False,
        )
        if result.exited != 0:
            output = (result.stderr or result.stdout).strip()
            raise ToolchainNotFound(
                f"Cannot install toolchain {version}: "
                f"{output.splitlines()[-1] if output else 'no output'}"
            )

    def probe_version(self, executable: Path, args=()) -> str:
        """Return the version reported by `<toolchain> --version`."""
        command = self.config.command("toolchain", "version").format(
            command=shlex.join([str(executable), *args])
        )
        result = self.runner.execute(
            command, timeout=self.config.toolchain.probe_timeout, check=False
        )
        tokens = result.stdout.split() if result.exited == 0 else []
        if not tokens:
            logger.warn(
                "Cannot determine toolchain version",
                executable=str(executable),
            )
            return UNKNOWN_VERSION
        return tokens[-1]
