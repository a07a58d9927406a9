"""Helper command execution using invoke."""

from pathlib import Path

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut

from ecowatch.core.log import logger


class Runner(Context):
    """invoke.Context with a single execute() entry point.

    Used for the short helper commands: git, the version manager, the
    GitHub CLI and version probes. The build itself runs through
    BuildChecker, which needs process-group control that invoke does
    not expose.
    """

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        timeout: int | None = None,
        log_file: Path | None = None,
        log_level: str | None = None,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Run a shell command and capture its output.

        Args:
            command: Command line, already rendered from a template
            cwd: Working directory
            timeout: Seconds before the command is killed; a timed-out
                command returns a result with exited == -1
            log_file: Write combined stdout/stderr here
            log_level: Echo output lines to the logger at this level
            check: Raise invoke.UnexpectedExit on non-zero exit
            env: Extra environment variables (merged into os.environ)

        Returns:
            invoke.Result with stdout, stderr and exited
        """
        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": False,
        }
        if timeout:
            kwargs["timeout"] = timeout
        if env:
            kwargs["env"] = env

        logger.spew("Executing {command}", command=command, cwd=str(cwd))

        try:
            if cwd:
                with self.cd(str(cwd)):
                    result = self.run(command, **kwargs)
            else:
                result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            logger.warn(
                "Command timed out after {timeout}s",
                command=command,
                timeout=timeout,
            )
            result = e.result
            result.exited = -1

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            log_file.write_text(result.stdout + result.stderr)

        if log_level:
            for line in (result.stdout + result.stderr).splitlines():
                logger.log(log_level, "{line}", line=line.rstrip())

        return result
