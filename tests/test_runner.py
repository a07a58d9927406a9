"""Tests for Runner."""

from ecowatch.core.runner import Runner


def test_captures_output(tmp_path):
    result = Runner().execute("echo hello", cwd=tmp_path)

    assert result.exited == 0
    assert result.stdout.strip() == "hello"


def test_nonzero_exit_without_check():
    result = Runner().execute("echo oops >&2; exit 3", check=False)

    assert result.exited == 3
    assert "oops" in result.stderr


def test_timeout_reports_minus_one():
    result = Runner().execute("sleep 10", timeout=1, check=False)

    assert result.exited == -1


def test_environment_and_log_file(tmp_path):
    log_file = tmp_path / "logs" / "out.log"

    result = Runner().execute(
        'echo "$ECOWATCH_TEST"', env={"ECOWATCH_TEST": "value"},
        log_file=log_file,
    )

    assert result.stdout.strip() == "value"
    assert log_file.read_text().strip() == "value"
