"""Telemetry plugins for Stream Watchdog."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import sentry_sdk

logger = logging.getLogger("stream-watchdog")


class TelemetryEvent:
    """Represents a telemetry event."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"

    LOG_LEVELS = {
        INFO: logging.INFO,
        WARNING: logging.WARNING,
        ERROR: logging.ERROR,
        FATAL: logging.CRITICAL,
    }

    def __init__(
        self,
        level: str,
        message: str,
        error: Optional[BaseException] = None,
        extras: Optional[dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ):
        self.level = level
        self.message = message
        self.error = error
        self.extras = extras or {}
        self.timestamp = timestamp or datetime.now()

    @property
    def log_level(self) -> int:
        return self.LOG_LEVELS.get(self.level, logging.INFO)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "level": self.level,
            "message": self.message,
            "error": repr(self.error) if self.error else None,
            "extras": dict(self.extras),
            "timestamp": self.timestamp.isoformat(),
        }


class BaseSink(ABC):
    """Base class for telemetry sinks."""

    name = "base"

    @abstractmethod
    def send(self, event: TelemetryEvent) -> tuple[bool, str]:
        """Send event. Returns (success, message)."""
        pass

    def flush(self, timeout: float) -> None:
        """Wait up to timeout seconds for queued events to be delivered."""

    def close(self) -> None:
        """Release sink resources."""


class SentrySink(BaseSink):
    """Sentry telemetry sink."""

    name = "sentry"

    def __init__(self, dsn: str, close_timeout: float = 2.0):
        # Raises sentry_sdk.utils.BadDsn on a malformed DSN
        sentry_sdk.init(
            dsn=dsn,
            traces_sample_rate=1.0,
            attach_stacktrace=True,
        )
        self.close_timeout = close_timeout

    def send(self, event: TelemetryEvent) -> tuple[bool, str]:
        with sentry_sdk.new_scope() as scope:
            scope.set_level(event.level)
            for key, value in event.extras.items():
                scope.set_extra(key, value)

            if event.error is not None:
                event_id = sentry_sdk.capture_exception(event.error)
            else:
                event_id = sentry_sdk.capture_message(event.message)

        if event_id is None:
            return False, "Sentry dropped the event"
        return True, f"Sentry event {event_id}"

    def flush(self, timeout: float) -> None:
        sentry_sdk.flush(timeout=timeout)

    def close(self) -> None:
        sentry_sdk.flush(timeout=self.close_timeout)


class Telemetry:
    """Handle through which every component reports events.

    Events are always written to the local log; sinks are best-effort and a
    failing sink is logged locally and otherwise ignored.
    """

    def __init__(self, sinks: Optional[list[BaseSink]] = None):
        self.sinks: list[BaseSink] = list(sinks or [])

    @classmethod
    def from_dsn(cls, dsn: Optional[str]) -> "Telemetry":
        """Create a handle for the given DSN, or a no-op handle if there is none."""
        if not dsn:
            return cls()

        try:
            sink = SentrySink(dsn)
        except Exception as e:
            logger.warning(f"Sentry initialization failed: {e}")
            return cls()

        telemetry = cls([sink])
        telemetry.info("Sentry initialized successfully.")
        return telemetry

    @property
    def enabled(self) -> bool:
        return bool(self.sinks)

    def emit(self, event: TelemetryEvent):
        """Log the event locally and forward it to every sink."""
        if event.error is not None and event.message:
            logger.log(event.log_level, f"{event.message}: {event.error}")
        else:
            logger.log(event.log_level, event.message or str(event.error))

        for sink in self.sinks:
            try:
                success, message = sink.send(event)
                if success:
                    logger.debug(f"Telemetry sent via {sink.name}: {message}")
                else:
                    logger.warning(f"Telemetry failed via {sink.name}: {message}")
            except Exception as e:
                logger.warning(f"Telemetry error ({sink.name}): {e}")

    def info(self, message: str, **extras):
        self.emit(TelemetryEvent(TelemetryEvent.INFO, message, extras=extras))

    def warning(self, message: str, **extras):
        self.emit(TelemetryEvent(TelemetryEvent.WARNING, message, extras=extras))

    def error(self, message: str, error: Optional[BaseException] = None, **extras):
        self.emit(TelemetryEvent(TelemetryEvent.ERROR, message, error=error, extras=extras))

    def fatal(self, message: str, error: Optional[BaseException] = None, **extras):
        self.emit(TelemetryEvent(TelemetryEvent.FATAL, message, error=error, extras=extras))

    def flush(self, timeout: float = 5.0):
        """Block for at most timeout seconds per sink while events are delivered."""
        for sink in self.sinks:
            try:
                sink.flush(timeout)
            except Exception as e:
                logger.warning(f"Telemetry flush error ({sink.name}): {e}")

    def close(self):
        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                logger.warning(f"Telemetry close error ({sink.name}): {e}")
        self.sinks = []
