"""Recovery command execution."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from .telemetry import Telemetry

logger = logging.getLogger("stream-watchdog")


class EmptyCommandError(ValueError):
    """The configured recovery command has no program to run."""


@dataclass
class CommandResult:
    """Result of one recovery command execution."""

    output: bytes
    succeeded: bool
    cause: Optional[BaseException] = None
    returncode: Optional[int] = None
    launched: bool = True

    @property
    def text(self) -> str:
        return self.output.decode("utf-8", errors="replace")


class RecoveryExecutor:
    """Run the operator's recovery command and report how it went."""

    def __init__(self, telemetry: Telemetry, dry_run: bool = False):
        self.telemetry = telemetry
        self.dry_run = dry_run

    def run(self, command: str) -> CommandResult:
        """Execute the command synchronously. Never raises.

        The command is split on whitespace; the first token is the program
        and the rest are its arguments. stdout and stderr are captured
        together. There is no timeout on the child process.
        """
        parts = command.split()
        if not parts:
            return CommandResult(
                output=b"",
                succeeded=False,
                cause=EmptyCommandError("Recovery command string is empty"),
                launched=False,
            )

        if self.dry_run:
            return CommandResult(
                output=f"[DRY-RUN] Would execute: {' '.join(parts)}".encode(),
                succeeded=True,
                launched=False,
            )

        try:
            result = subprocess.run(
                parts,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as e:
            return CommandResult(output=b"", succeeded=False, cause=e)

        if result.returncode == 0:
            return CommandResult(output=result.stdout, succeeded=True, returncode=0)

        return CommandResult(
            output=result.stdout,
            succeeded=False,
            cause=subprocess.CalledProcessError(result.returncode, parts, output=result.stdout),
            returncode=result.returncode,
        )

    def run_and_report(self, command: str) -> CommandResult:
        """Execute the command and emit one telemetry event for the result."""
        result = self.run(command)

        if not result.launched and not result.succeeded:
            self.telemetry.error(f"Error: {result.cause}")
            return result

        logger.info(f"Command Output:\n{result.text}")

        program = command.split()[0]
        if result.succeeded:
            self.telemetry.info(
                f"command executed successfully: {program}",
                command_output=result.text,
            )
        else:
            self.telemetry.fatal(
                "command failed",
                error=result.cause,
                command_output=result.text,
            )

        return result
