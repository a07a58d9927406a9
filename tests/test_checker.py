"""Tests for BuildChecker against fake toolchains."""

import asyncio
import time

import pytest

from ecowatch.catalog.models import ResolvedToolchain, VerdictKind
from ecowatch.check.checker import BuildChecker, find_build_root, truncate
from ecowatch.fetch.fetcher import Workspace


@pytest.fixture
def workspace(tmp_path):
    """A checked-out project with a manifest at its top level."""
    root = tmp_path / "ws"
    src = root / "src"
    src.mkdir(parents=True)
    (src / "Veryl.toml").write_text('[project]\nname = "a"\n')
    return Workspace(root, "org/a", path=src, revision="abc123")


def toolchain(path):
    return ResolvedToolchain(executable=path, version="0.16.0")


def check(config, workspace, tool, timeout=None):
    return asyncio.run(
        BuildChecker(config).check(workspace, toolchain(tool), timeout)
    )


def test_success(config, workspace, make_tool):
    tool = make_tool("veryl", 'echo "Compiling $1"\n')

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.SUCCESS
    assert verdict.detail is None
    assert verdict.toolchain_version == "0.16.0"
    assert verdict.revision == "abc123"
    assert not verdict.migrated
    assert workspace.closed


def test_compile_failure_keeps_diagnostic(config, workspace, make_tool):
    config.check.migrate = False
    tool = make_tool("veryl", """
        echo "error: unknown identifier 'foo'" >&2
        exit 1
    """)

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.COMPILE_FAILURE
    assert "unknown identifier 'foo'" in verdict.detail
    assert workspace.closed


def test_compile_failure_without_output(config, workspace, make_tool):
    config.check.migrate = False
    tool = make_tool("veryl", "exit 3\n")

    verdict = check(config, workspace, tool)

    assert verdict.detail == "exit status 3"


def test_runs_in_manifest_directory(config, tmp_path, make_tool):
    root = tmp_path / "ws"
    nested = root / "src" / "hw"
    nested.mkdir(parents=True)
    (nested / "Veryl.toml").write_text("")
    workspace = Workspace(root, "org/a", path=root / "src")
    tool = make_tool("veryl", '[ -f Veryl.toml ] || exit 1\n')

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.SUCCESS


def test_timeout_kills_descendants(config, workspace, make_tool, tmp_path):
    """A hung build times out and its children die with it."""
    marker = tmp_path / "survived"
    tool = make_tool("veryl", f"""
        (sleep 3; touch {marker}) &
        sleep 30
    """)

    started = time.monotonic()
    verdict = check(config, workspace, tool, timeout=1)
    elapsed = time.monotonic() - started

    assert verdict.kind is VerdictKind.TIMEOUT
    assert "1" in verdict.detail
    assert elapsed < 10
    assert workspace.closed
    time.sleep(3.5)
    assert not marker.exists()


def test_missing_executable(config, workspace, tmp_path):
    verdict = check(config, workspace, tmp_path / "no-such-veryl")

    assert verdict.kind is VerdictKind.TOOLCHAIN_MISSING
    assert "no-such-veryl" in verdict.detail
    assert workspace.closed


def test_migrate_then_rebuild(config, workspace, make_tool):
    """A build that passes after migrate is a migrated success."""
    tool = make_tool("veryl", """
        case "$1" in
            +0.16) [ "$2" = migrate ] && touch migrated ;;
            build) [ -f migrated ] || { echo "old syntax"; exit 1; } ;;
        esac
    """)

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.SUCCESS
    assert verdict.migrated


def test_migrate_does_not_hide_failure(config, workspace, make_tool):
    tool = make_tool("veryl", """
        case "$1" in
            +0.*) exit 0 ;;
            build) echo "error: still broken"; exit 1 ;;
        esac
    """)

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.COMPILE_FAILURE
    assert "still broken" in verdict.detail
    assert not verdict.migrated


def test_compare_mode_skips_migrate(config, workspace, make_tool, tmp_path):
    calls = tmp_path / "calls"
    config.check.compare = True
    tool = make_tool("veryl", f"""
        echo "$@" >> {calls}
        exit 1
    """)

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.COMPILE_FAILURE
    assert calls.read_text().splitlines() == ["build --check"]


def test_keep_logs(config, workspace, make_tool):
    config.check.keep_logs = True
    tool = make_tool("veryl", 'echo "full output"\n')

    check(config, workspace, tool)

    log = config.check.output_dir / "org__a.log"
    assert log.read_text() == "full output\n"


def test_cancellation_cleans_up(config, workspace, make_tool):
    """Cancelling a check still removes the workspace."""
    tool = make_tool("veryl", "sleep 30\n")

    async def cancel_soon():
        task = asyncio.create_task(
            BuildChecker(config).check(workspace, toolchain(tool), 30)
        )
        await asyncio.sleep(0.5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_soon())
    assert workspace.closed


def test_truncate_keeps_tail():
    text = "a" * 50 + "the error"

    result = truncate(text, 20)

    assert result.endswith("a" * 11 + "the error")
    assert "39 characters truncated" in result
    assert truncate("short", 20) == "short"


def test_find_build_root(tmp_path):
    assert find_build_root(tmp_path, "Veryl.toml") == tmp_path

    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "z").mkdir()
    (tmp_path / "a" / "b" / "Veryl.toml").write_text("")
    (tmp_path / "z" / "Veryl.toml").write_text("")

    assert find_build_root(tmp_path, "Veryl.toml") == tmp_path / "z"


def test_background_child_does_not_delay_success(config, workspace, make_tool):
    """The exit status decides, even while a child keeps stdout open."""
    tool = make_tool("veryl", """
        (sleep 20) &
        echo built
        exit 0
    """)

    started = time.monotonic()
    verdict = check(config, workspace, tool, timeout=10)
    elapsed = time.monotonic() - started

    assert verdict.kind is VerdictKind.SUCCESS
    assert elapsed < 8
    assert workspace.closed


def test_timeout_keeps_partial_output(config, workspace, make_tool):
    config.check.keep_logs = True
    tool = make_tool("veryl", """
        echo "compiling"
        sleep 30
    """)

    verdict = check(config, workspace, tool, timeout=1)

    assert verdict.kind is VerdictKind.TIMEOUT
    log = config.check.output_dir / "org__a.log"
    assert "compiling" in log.read_text()


def test_explicit_zero_timeout(config, workspace, make_tool, tmp_path):
    """A zero budget is honoured, not replaced by the configured one."""
    marker = tmp_path / "ran"
    tool = make_tool("veryl", f"touch {marker}\n")

    verdict = check(config, workspace, tool, timeout=0)

    assert verdict.kind is VerdictKind.TIMEOUT
    assert not marker.exists()
    assert workspace.closed


def test_stepwise_migration(config, workspace, make_tool, tmp_path):
    """Sources three releases behind are migrated one release at a time."""
    calls = tmp_path / "calls"
    tool = make_tool("veryl", f"""
        echo "$@" >> {calls}
        case "$1" in
            build) [ -f migrated-0.16 ] || {{ echo "old syntax"; exit 1; }} ;;
            +0.13) touch migrated-0.13 ;;
            +0.*) [ -f migrated-0.13 ] || exit 1; touch "migrated-${{1#+}}" ;;
        esac
    """)

    verdict = check(config, workspace, tool)

    assert verdict.kind is VerdictKind.SUCCESS
    assert verdict.migrated
    assert calls.read_text().splitlines() == [
        "build",
        "+0.16 migrate",
        "+0.15 migrate",
        "+0.14 migrate",
        "+0.13 migrate",
        "+0.14 migrate",
        "+0.15 migrate",
        "+0.16 migrate",
        "build",
    ]


def test_migration_gives_up(config, workspace, make_tool, tmp_path):
    calls = tmp_path / "calls"
    tool = make_tool("veryl", f"""
        echo "$@" >> {calls}
        echo "error: cannot parse"
        exit 1
    """)

    verdict = asyncio.run(BuildChecker(config).check(
        workspace,
        ResolvedToolchain(executable=tool, version="0.2.1"),
    ))

    assert verdict.kind is VerdictKind.COMPILE_FAILURE
    assert not verdict.migrated
    assert calls.read_text().splitlines() == [
        "build", "+0.2 migrate", "+0.1 migrate"
    ]


def test_single_migrate_outside_zero_releases(
    config, workspace, make_tool, tmp_path
):
    calls = tmp_path / "calls"
    tool = make_tool("veryl", f"""
        echo "$@" >> {calls}
        case "$1" in
            migrate) touch migrated ;;
            build) [ -f migrated ] || exit 1 ;;
        esac
    """)

    verdict = asyncio.run(BuildChecker(config).check(
        workspace,
        ResolvedToolchain(executable=tool, version="1.2.0"),
    ))

    assert verdict.kind is VerdictKind.SUCCESS
    assert verdict.migrated
    assert calls.read_text().splitlines() == ["build", "migrate", "build"]
