"""Tests for the logger, its sinks and the cleanup cascade."""

import tempfile
from pathlib import Path

import pytest

from ecowatch.core.log import (
    LEVELS,
    ConsoleSink,
    FileSink,
    Logger,
    LogfireSink,
    _LoggerProxy,
    level_name,
    setup_logger,
)


@pytest.fixture(autouse=True)
def restore_logging():
    """Put the console-only test logger back after each test."""
    yield
    setup_logger(
        log_root=Path(tempfile.gettempdir()) / "ecowatch-tests",
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


def file_logger(tmp_path, name="test.log", **file_options):
    logger = Logger(
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, path=str(tmp_path / name), **file_options),
        logfire=LogfireSink(enabled=False),
    )
    logger.setup(log_root=tmp_path, run_name="test")
    return logger


def test_logger_closes_file_via_context_manager(tmp_path):
    logger = file_logger(tmp_path)

    assert logger.file._file is not None
    assert not logger.file._file.closed

    with logger:
        logger.info("test message")

    assert logger.file._file.closed


def test_logger_closes_on_exception(tmp_path):
    logger = file_logger(tmp_path)

    with pytest.raises(ValueError), logger:
        logger.info("before exception")
        raise ValueError("test exception")

    assert logger.file._file.closed


def test_file_written_and_flushed_on_close(tmp_path):
    logger = file_logger(tmp_path, name="written.log")

    with logger:
        logger.info("Checked {project}", project="org/a")

    content = (tmp_path / "written.log").read_text()
    assert "Checked org/a" in content


def test_file_template_and_level(tmp_path):
    """Records below the sink level are dropped; the rest use the
    template, with keyword attributes appended."""
    logger = file_logger(
        tmp_path,
        level="warn",
        format_template="[{level}] {message}",
    )

    with logger:
        logger.info("quiet")
        logger.warn("{project}: timeout", project="org/a")

    lines = (tmp_path / "test.log").read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("[warn] org/a: timeout")
    assert "project='org/a'" in lines[0]


def test_escape_special_characters(tmp_path):
    logger = file_logger(
        tmp_path,
        format_template="{message}",
        escape_special_characters=True,
    )

    with logger:
        logger.error("first\nsecond")

    assert "first\\nsecond" in (tmp_path / "test.log").read_text()


def test_path_template(tmp_path):
    logger = Logger(
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, path="{log_root}/{run_name}/run.log"),
    )
    logger.setup(log_root=tmp_path, run_name="nightly")
    logger.close()

    assert (tmp_path / "nightly" / "run.log").exists()


def test_sinks_inherit_level():
    logger = Logger(level="debug", file=FileSink(level="error"))

    assert logger.console.level == "debug"
    assert logger.file.level == "error"


@pytest.mark.parametrize("name", ["spew", "trace", "debug", "info", "warn",
                                  "error", "fatal"])
def test_level_names_round_trip(name):
    assert level_name(LEVELS[name]) == name


def test_proxy_is_noop_before_setup(monkeypatch):
    import ecowatch.core.log as log

    monkeypatch.setattr(log, "_current_logger", None)
    proxy = _LoggerProxy()

    proxy.info("ignored", key="value")
    with proxy.span("ignored"), proxy:
        pass
