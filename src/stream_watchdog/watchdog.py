"""Main watchdog daemon implementation."""

from __future__ import annotations

import logging
import signal
import sys
import time
from pathlib import Path
from typing import Callable, Optional

from .config import Settings
from .connector import StreamConnector
from .recovery import RecoveryExecutor
from .session import MonitoringSession, Outcome
from .telemetry import Telemetry

logger = logging.getLogger("stream-watchdog")

CYCLE_FLUSH_TIMEOUT = 5.0
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level_name: str = "INFO", log_file: Optional[str] = None):
    """Configure console and optional file logging for the watchdog logger."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Cannot write to log file {log_file}: {e}")


class StreamWatchdog:
    """Supervisor that keeps a session open and runs recovery whenever it ends."""

    def __init__(
        self,
        settings: Settings,
        telemetry: Telemetry,
        connector: Optional[StreamConnector] = None,
        executor: Optional[RecoveryExecutor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.telemetry = telemetry
        self.connector = connector or StreamConnector()
        self.executor = executor or RecoveryExecutor(telemetry)
        self.sleep = sleep
        self.cycles = 0
        self.last_outcome: Optional[Outcome] = None

    def run_cycle(self) -> Outcome:
        """Session, failure report, recovery, flush and cooldown, once."""
        self.cycles += 1

        session = MonitoringSession(
            self.settings.target_url,
            self.settings.idle_timeout,
            self.telemetry,
            connector=self.connector,
        )
        outcome = session.run()
        self.last_outcome = outcome

        self.telemetry.error(
            "Monitor session ended with error",
            error=outcome.cause,
            outcome=outcome.kind.value,
            frames_received=outcome.frames_received,
            cycle=self.cycles,
        )

        self.telemetry.info("Attempting to execute command...")
        self.executor.run_and_report(self.settings.command)

        self.telemetry.info(f">>> Waiting {self.settings.cooldown:g}s before reconnecting...")
        self.telemetry.flush(CYCLE_FLUSH_TIMEOUT)

        self.sleep(self.settings.cooldown)

        self.telemetry.info(">>> Cooldown finished. Retrying connection...")
        return outcome

    def run(self):
        """Run the watchdog loop. Returns only when the process is told to stop."""

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            sys.exit(128 + signum)

        signal.signal(signal.SIGTERM, handle_signal)

        self.telemetry.info(
            f"Configuration Loaded. Target: {self.settings.target_url}, "
            f"Timeout: {self.settings.idle_timeout:g}s, Cooldown: {self.settings.cooldown:g}s"
        )
        if self.executor.dry_run:
            logger.info("Running in DRY-RUN mode")

        try:
            while True:
                self.run_cycle()
        finally:
            logger.info("Stream Watchdog stopped")
            self.telemetry.close()
