"""Tests for the command line entry point and its exit codes."""

import pytest
from pydantic_settings import CliApp

from ecowatch.catalog.store import CatalogStore
from ecowatch.cli import CliState


def run_cli(*args):
    with pytest.raises(SystemExit) as e:
        CliApp.run(CliState, cli_args=list(args))
    return e.value.code


@pytest.fixture
def workdir(tmp_path, mock_argv, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_no_subcommand_shows_help(workdir, capsys):
    assert run_cli() == 1
    assert "check" in capsys.readouterr().out


def test_check_with_explicit_toolchain(workdir, make_tool):
    """An empty catalog with a working toolchain is a clean run."""
    tool = make_tool("veryl", 'echo "veryl 0.16.0"\n')
    catalog = workdir / "catalog.json"

    code = run_cli(
        "--config.catalog.path", str(catalog),
        "check", "--executable", str(tool),
    )

    assert code == 0
    assert len(CatalogStore(catalog).load()) == 0
    assert catalog.exists()


def test_check_with_missing_toolchain(workdir):
    catalog = workdir / "catalog.json"

    code = run_cli(
        "--config.catalog.path", str(catalog),
        "check", "--executable", str(workdir / "missing"),
    )

    assert code == 1
    assert not catalog.exists()


def test_check_with_corrupt_catalog(workdir):
    catalog = workdir / "catalog.json"
    catalog.write_text("not json")

    code = run_cli("--config.catalog.path", str(catalog), "check")

    assert code == 1
    assert catalog.read_text() == "not json"
