"""Monitoring session state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .connector import OutcomeKind, StreamConnector, StreamError
from .telemetry import Telemetry

logger = logging.getLogger("stream-watchdog")


class SessionState(Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    LISTENING = "listening"
    ENDED = "ended"


@dataclass
class Outcome:
    """Why a session ended. A session never ends successfully."""

    kind: OutcomeKind
    cause: StreamError
    frames_received: int = 0


class MonitoringSession:
    """One connect, subscribe and listen attempt against the target.

    A session is single-use: the Supervisor creates a new one for every
    retry, so a connection is never reused across attempts.
    """

    def __init__(
        self,
        url: str,
        idle_timeout: float,
        telemetry: Telemetry,
        connector: Optional[StreamConnector] = None,
    ):
        self.url = url
        self.idle_timeout = idle_timeout
        self.telemetry = telemetry
        self.connector = connector or StreamConnector()
        self.state = SessionState.CONNECTING
        self.frames_received = 0
        self.outcome: Optional[Outcome] = None

    def run(self) -> Outcome:
        """Run until the stream fails or goes silent for idle_timeout seconds."""
        if self.outcome is not None:
            raise RuntimeError("A monitoring session can only be run once")

        try:
            self._run()
        except StreamError as e:
            self.outcome = Outcome(kind=e.kind, cause=e, frames_received=self.frames_received)
        finally:
            self.state = SessionState.ENDED

        return self.outcome

    def _run(self):
        self.telemetry.info("Connecting to streaming API...", url=self.url)

        with self.connector.connect(self.url) as connection:
            connection.subscribe()
            self.state = SessionState.SUBSCRIBED
            self.telemetry.info("Monitoring started (Listening for messages)...")

            self.state = SessionState.LISTENING
            while True:
                connection.await_next(self.idle_timeout)
                self.frames_received = connection.frames_received
                logger.debug(f"Frame #{self.frames_received} received")
