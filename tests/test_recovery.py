"""Tests for recovery command execution."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from stream_watchdog.recovery import CommandResult, EmptyCommandError, RecoveryExecutor
from stream_watchdog.telemetry import Telemetry


@pytest.fixture
def script(tmp_path):
    """Write an executable shell script and return its path."""

    def make(body):
        path = tmp_path / "recover.sh"
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(0o755)
        return str(path)

    return make


class TestCommandResult:
    """Test CommandResult."""

    def test_text_decodes_with_replacement(self):
        """Output that is not valid UTF-8 still renders."""
        result = CommandResult(output=b"ok \xff", succeeded=True)
        assert result.text.startswith("ok ")


class TestRecoveryExecutor:
    """Test RecoveryExecutor.run."""

    @pytest.mark.parametrize("command", ["", "   ", "\t\n"])
    @patch("stream_watchdog.recovery.subprocess.run")
    def test_empty_command_launches_nothing(self, mock_run, command):
        """An empty command is a local failure, not a crash."""
        result = RecoveryExecutor(Telemetry()).run(command)

        assert result.succeeded is False
        assert result.launched is False
        assert isinstance(result.cause, EmptyCommandError)
        mock_run.assert_not_called()

    def test_success(self):
        """Arguments are split on whitespace and output is captured."""
        result = RecoveryExecutor(Telemetry()).run("echo  hello   world")

        assert result.succeeded is True
        assert result.returncode == 0
        assert result.output == b"hello world\n"
        assert result.cause is None

    def test_merged_output_and_exit_status(self, script):
        """stdout and stderr are merged; a non-zero exit is a failure."""
        path = script("echo out\necho err >&2\nexit 3\n")

        result = RecoveryExecutor(Telemetry()).run(path)

        assert result.succeeded is False
        assert result.returncode == 3
        assert b"out" in result.output
        assert b"err" in result.output
        assert isinstance(result.cause, subprocess.CalledProcessError)

    def test_missing_program(self, tmp_path):
        """A program that cannot be launched is reported, not raised."""
        result = RecoveryExecutor(Telemetry()).run(str(tmp_path / "does-not-exist.sh"))

        assert result.succeeded is False
        assert isinstance(result.cause, FileNotFoundError)
        assert result.output == b""

    @patch("stream_watchdog.recovery.subprocess.run")
    def test_argument_list(self, mock_run):
        """The command runs without a shell and without a timeout."""
        mock_run.return_value = MagicMock(returncode=0, stdout=b"")

        RecoveryExecutor(Telemetry()).run("systemctl restart misskey")

        args, kwargs = mock_run.call_args
        assert args[0] == ["systemctl", "restart", "misskey"]
        assert kwargs["stderr"] == subprocess.STDOUT
        assert "timeout" not in kwargs
        assert "shell" not in kwargs

    @patch("stream_watchdog.recovery.subprocess.run")
    def test_dry_run(self, mock_run):
        """Dry-run mode reports success without launching anything."""
        result = RecoveryExecutor(Telemetry(), dry_run=True).run("systemctl restart misskey")

        assert result.succeeded is True
        assert b"DRY-RUN" in result.output
        mock_run.assert_not_called()


class TestRunAndReport:
    """Test the telemetry emitted around a recovery run."""

    def test_success_reported_as_info(self, telemetry, recording_sink):
        """Success is an info event with the output attached."""
        RecoveryExecutor(telemetry).run_and_report("echo recovered")

        assert recording_sink.levels() == ["info"]
        event = recording_sink.events[0]
        assert event.message == "command executed successfully: echo"
        assert event.extras["command_output"] == "recovered\n"

    def test_failure_reported_as_fatal(self, telemetry, recording_sink, script):
        """A failing command is a fatal event with the output attached."""
        RecoveryExecutor(telemetry).run_and_report(script("echo nope\nexit 1\n"))

        assert recording_sink.levels() == ["fatal"]
        event = recording_sink.events[0]
        assert isinstance(event.error, subprocess.CalledProcessError)
        assert event.extras["command_output"] == "nope\n"

    def test_launch_failure_reported_as_fatal(self, telemetry, recording_sink):
        """A command that cannot start is fatal too."""
        result = RecoveryExecutor(telemetry).run_and_report("/nonexistent/recover.sh")

        assert result.succeeded is False
        assert recording_sink.levels() == ["fatal"]

    def test_empty_command_reported_as_error(self, telemetry, recording_sink):
        """An empty command is reported once and nothing runs."""
        result = RecoveryExecutor(telemetry).run_and_report("")

        assert result.launched is False
        assert recording_sink.levels() == ["error"]
        assert "empty" in recording_sink.messages()[0]
