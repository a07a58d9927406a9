"""Pytest configuration and fixtures for ecowatch tests."""

import os
import stat
import sys
import tempfile
import textwrap
from pathlib import Path

import pytest

from ecowatch.core.log import ConsoleSink, setup_logger


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Configure logging for console-only mode during tests.

    This enables debug output during test runs without requiring
    authentication or sending logs to logfire.dev.
    """
    test_log_root = Path(tempfile.gettempdir()) / "ecowatch-tests"
    setup_logger(
        log_root=test_log_root,
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture
def mock_argv():
    """Save and restore sys.argv."""
    original = sys.argv.copy()
    sys.argv = ["ecowatch"]
    yield
    sys.argv = original


@pytest.fixture
def state(tmp_path, mock_argv, monkeypatch):
    """A fully loaded State whose files all live under tmp_path.

    sys.argv is replaced so pytest's own options do not reach the
    settings parser, and the working directory is moved so a stray
    ./ecowatch.yaml cannot leak into the test.
    """
    from ecowatch.core.config import State

    monkeypatch.chdir(tmp_path)
    state = State()
    config = state.config
    config.catalog.path = tmp_path / "db" / "catalog.json"
    config.fetch.work_root = tmp_path / "work"
    config.check.output_dir = tmp_path / "builds"
    config.check.timeout = 30
    config.log_root = tmp_path / "logs"
    yield state
    state.close()


@pytest.fixture
def config(state):
    """Configuration section of the `state` fixture."""
    return state.config


@pytest.fixture
def make_tool(tmp_path):
    """Write an executable shell script standing in for a tool.

    Returns a function taking the script name and body; the body is
    run by /bin/sh with the original arguments.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body).lstrip())
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP)
        return path

    make.bin_dir = bin_dir
    return make


@pytest.fixture
def on_path(monkeypatch):
    """Prepend directories to PATH for the duration of a test."""

    def prepend(*dirs: Path):
        monkeypatch.setenv(
            "PATH",
            os.pathsep.join([*(str(d) for d in dirs), os.environ["PATH"]]),
        )

    return prepend
