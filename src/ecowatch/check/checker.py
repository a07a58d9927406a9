"""Run the toolchain against a checked-out project and classify the result."""

from __future__ import annotations

import asyncio
import contextlib
import os
import re
import shlex
import signal
import time
from dataclasses import dataclass, replace
from pathlib import Path

from ecowatch.catalog.models import ResolvedToolchain, Verdict, VerdictKind
from ecowatch.core.log import logger
from ecowatch.fetch.fetcher import Workspace

# Seconds to wait for the output pipe once the process group is gone
DRAIN_GRACE = 5

_ZERO_MINOR = re.compile(r"^0\.(\d+)(?:\.|$)")


@dataclass
class Invocation:
    """Outcome of one toolchain process."""

    exit_code: int | None = None
    output: str = ""
    timed_out: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def truncate(text: str, limit: int) -> str:
    """Keep the last `limit` characters, where compilers put the errors."""
    if len(text) <= limit:
        return text
    return f"[... {len(text) - limit} characters truncated ...]\n{text[-limit:]}"


def find_build_root(path: Path, manifest: str) -> Path:
    """Directory of the shallowest manifest under `path`, else `path`."""
    if (path / manifest).is_file():
        return path
    matches = sorted(
        (p for p in path.rglob(manifest)
         if p.is_file() and ".git" not in p.relative_to(path).parts),
        key=lambda p: (len(p.parts), str(p)),
    )
    return matches[0].parent if matches else path


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        chunks.append(chunk)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the process group led by `process`.

    The process was started in its own session, so its pid is also the
    group id and every descendant that did not detach is reached.
    """
    if hasattr(os, "killpg"):
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
    else:
        with contextlib.suppress(ProcessLookupError):
            process.kill()


class BuildChecker:
    """Builds one workspace with a resolved toolchain.

    The workspace belongs to the checker from the moment check() is
    called: it is deleted before check() returns or raises, whatever
    the outcome, including timeouts and cancellation.
    """

    def __init__(self, config):
        self.config = config

    async def check(
        self,
        workspace: Workspace,
        toolchain: ResolvedToolchain,
        timeout: float | None = None,
    ) -> Verdict:
        if timeout is None:
            timeout = self.config.check.timeout
        started = time.monotonic()
        deadline = started + timeout

        try:
            workdir = find_build_root(workspace.path, self.config.check.manifest)
            build = self._argv(
                toolchain, "compare" if self.config.check.compare else "build"
            )

            logger.debug(
                "Building {project}",
                project=workspace.project_id,
                command=shlex.join(build),
                cwd=str(workdir),
            )
            result = await self.invoke(build, workdir, deadline)
            output = result.output
            migrated = False

            if self._should_migrate(result):
                migrate = await self.migrate(toolchain, workdir, deadline)
                output += migrate.output
                if migrate.success:
                    logger.debug(
                        "Migrated {project}, rebuilding",
                        project=workspace.project_id,
                    )
                    result = await self.invoke(build, workdir, deadline)
                    output += result.output
                    migrated = result.success
                elif migrate.timed_out:
                    result = migrate

            if self.config.check.keep_logs:
                self._write_log(workspace.project_id, output)

            return self._verdict(
                result,
                output,
                timeout=timeout,
                toolchain=toolchain,
                revision=workspace.revision,
                migrated=migrated,
                duration=time.monotonic() - started,
            )
        finally:
            workspace.close()

    async def migrate(
        self, toolchain: ResolvedToolchain, workdir: Path, deadline: float
    ) -> Invocation:
        """Bring the project's sources up to the toolchain's syntax.

        For a 0.x toolchain, migrate is tried with each older minor
        release (newest first) until one accepts the project; every
        newer release up to the toolchain's own then migrates in turn.
        Other versions get a single migrate with the toolchain itself.

        Returns:
            Invocation whose success means the sources were migrated
        """
        match = _ZERO_MINOR.match(toolchain.version)
        if match is None or int(match.group(1)) == 0:
            return await self.invoke(
                self._argv(toolchain, "migrate"), workdir, deadline
            )

        current = int(match.group(1))
        outputs = []
        start = None
        result = Invocation()
        for minor in range(current, 0, -1):
            result = await self.invoke(
                self._release_argv(toolchain, minor), workdir, deadline
            )
            outputs.append(result.output)
            if result.timed_out or result.error is not None:
                return replace(result, output="".join(outputs))
            if result.success:
                start = minor
                break

        if start is None:
            return replace(result, output="".join(outputs))

        for minor in range(start + 1, current + 1):
            # A release that rejects already migrated sources is not fatal
            result = await self.invoke(
                self._release_argv(toolchain, minor), workdir, deadline
            )
            outputs.append(result.output)
            if result.timed_out:
                return replace(result, output="".join(outputs))

        logger.debug(
            "Migrated from 0.{start} to 0.{current}",
            start=start,
            current=current,
        )
        return Invocation(exit_code=0, output="".join(outputs))

    async def invoke(
        self, argv: list[str], cwd: Path, deadline: float
    ) -> Invocation:
        """Run one process, killing its whole group at the deadline.

        The deadline applies to the process itself, not to its output
        pipe: once the leader exits, any background children still
        holding the pipe are killed and the output read so far is kept.
        The process is always reaped before this returns; on
        cancellation it is killed and reaped before the cancellation
        propagates.
        """
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return Invocation(timed_out=True)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            return Invocation(error=f"{argv[0]}: {e.strerror or e}")

        chunks: list[bytes] = []
        reader = asyncio.create_task(_drain(process.stdout, chunks))
        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=remaining)
        except TimeoutError:
            timed_out = True
        except asyncio.CancelledError:
            _kill_group(process)
            await process.wait()
            reader.cancel()
            raise
        finally:
            # Also sweeps children left behind by a leader that exited
            _kill_group(process)

        if timed_out:
            await process.wait()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(reader, timeout=DRAIN_GRACE)

        output = b"".join(chunks).decode("utf-8", errors="replace")
        if timed_out:
            return Invocation(timed_out=True, output=output)
        return Invocation(exit_code=process.returncode, output=output)

    def _argv(self, toolchain: ResolvedToolchain, name: str) -> list[str]:
        return toolchain.argv(
            *shlex.split(self.config.command("toolchain", name))
        )

    def _release_argv(
        self, toolchain: ResolvedToolchain, minor: int
    ) -> list[str]:
        """Migrate command run by the 0.<minor> release."""
        return [
            str(toolchain.executable),
            self.config.toolchain.version_arg.format(version=f"0.{minor}"),
            *shlex.split(self.config.command("toolchain", "migrate")),
        ]

    def _should_migrate(self, result: Invocation) -> bool:
        return (
            self.config.check.migrate
            and not self.config.check.compare
            and result.exit_code not in (None, 0)
        )

    def _write_log(self, project_id: str, output: str) -> None:
        output_dir = Path(self.config.check.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / f"{project_id.replace('/', '__')}.log").write_text(
            output, encoding="utf-8"
        )

    def _verdict(
        self,
        result: Invocation,
        output: str,
        *,
        timeout: float,
        toolchain: ResolvedToolchain,
        revision: str | None,
        migrated: bool,
        duration: float,
    ) -> Verdict:
        if result.error is not None:
            kind, detail = VerdictKind.TOOLCHAIN_MISSING, result.error
        elif result.timed_out:
            kind, detail = VerdictKind.TIMEOUT, f"no result within {timeout}s"
        elif result.success:
            kind, detail = VerdictKind.SUCCESS, None
        else:
            kind = VerdictKind.COMPILE_FAILURE
            detail = truncate(
                output.strip() or f"exit status {result.exit_code}",
                self.config.check.max_output_chars,
            )

        return Verdict(
            kind=kind,
            detail=detail,
            toolchain_version=toolchain.version,
            revision=revision,
            migrated=migrated,
            duration=round(duration, 3),
        )
