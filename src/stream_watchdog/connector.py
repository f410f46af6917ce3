"""Streaming API connection handling."""

from __future__ import annotations

import logging
import math
import time
from contextlib import ExitStack
from enum import Enum
from typing import Any, Callable, ContextManager, Optional

from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

logger = logging.getLogger("stream-watchdog")

# Seconds to wait for the peer's close frame; a dead peer never sends one
CLOSE_TIMEOUT = 0.25

# Wire contract with the streaming API; must stay byte-for-byte identical.
SUBSCRIBE_PAYLOAD = (
    '{"type":"connect","body":{"channel":"globalTimeline","id":"1",'
    '"params":{"withRenotes":true,"minimize":true}}}'
)


class OutcomeKind(Enum):
    """Why a monitoring session ended."""

    CONNECT_FAILED = "connect_failed"
    SUBSCRIBE_FAILED = "subscribe_failed"
    DEADLINE_SET_FAILED = "deadline_set_failed"
    READ_FAILED_OR_TIMED_OUT = "read_failed_or_timed_out"


class StreamError(Exception):
    """Base class for failures of the streaming connection."""

    kind: OutcomeKind
    description = "stream error"

    def __str__(self) -> str:
        detail = self.args[0] if self.args else self.__cause__
        if detail is None:
            return self.description
        return f"{self.description}: {str(detail) or type(detail).__name__}"


class ConnectFailed(StreamError):
    kind = OutcomeKind.CONNECT_FAILED
    description = "connection failed"


class SubscribeFailed(StreamError):
    kind = OutcomeKind.SUBSCRIBE_FAILED
    description = "subscribe request failed"


class DeadlineSetFailed(StreamError):
    kind = OutcomeKind.DEADLINE_SET_FAILED
    description = "failed to set read deadline"


class ReadFailedOrTimedOut(StreamError):
    kind = OutcomeKind.READ_FAILED_OR_TIMED_OUT
    description = "read timeout or disconnection"


def dial(url: str) -> ContextManager[Any]:
    """Open a websocket with no handshake timeout and no keepalive pings.

    The idle timeout applied by ``StreamConnection.await_next`` is the only
    timeout on the connection. The returned object must be entered as a
    context manager to obtain the live connection.
    """
    return connect(
        url,
        open_timeout=None,
        ping_interval=None,
        close_timeout=CLOSE_TIMEOUT,
    )


class StreamConnection:
    """A single live connection. Closed when the ``with`` block exits."""

    def __init__(self, websocket: Any, url: str, exit_stack: Optional[ExitStack] = None):
        self.websocket = websocket
        self.url = url
        self.exit_stack = exit_stack
        self.frames_received = 0
        self.deadline: Optional[float] = None

    def __enter__(self) -> "StreamConnection":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        try:
            self.websocket.close()
        except Exception as e:
            logger.debug(f"Error closing connection to {self.url}: {e}")

        if self.exit_stack is not None:
            try:
                self.exit_stack.close()
            except Exception as e:
                logger.debug(f"Error releasing connection to {self.url}: {e}")

    def subscribe(self, payload: str = SUBSCRIBE_PAYLOAD):
        """Send the channel subscription request."""
        try:
            self.websocket.send(payload)
        except (OSError, WebSocketException) as e:
            raise SubscribeFailed() from e

    def arm_deadline(self, idle_timeout: float) -> float:
        """Set a fresh absolute deadline of now + idle_timeout."""
        if (
            isinstance(idle_timeout, bool)
            or not isinstance(idle_timeout, (int, float))
            or not math.isfinite(idle_timeout)
            or idle_timeout <= 0
        ):
            raise DeadlineSetFailed(f"invalid idle timeout {idle_timeout!r}")

        self.deadline = time.monotonic() + idle_timeout
        return self.deadline

    def await_next(self, idle_timeout: float):
        """Block until one frame arrives; its content is discarded."""
        deadline = self.arm_deadline(idle_timeout)
        remaining = max(deadline - time.monotonic(), 0.0)

        try:
            self.websocket.recv(timeout=remaining)
        except (TimeoutError, OSError, WebSocketException) as e:
            raise ReadFailedOrTimedOut() from e

        self.frames_received += 1


class StreamConnector:
    """Opens connections to the streaming endpoint. A failed attempt is never retried here."""

    def __init__(self, dialer: Callable[[str], Any] = dial):
        self.dialer = dialer

    def connect(self, url: str) -> StreamConnection:
        exit_stack = ExitStack()
        try:
            websocket = exit_stack.enter_context(self.dialer(url))
        except (OSError, WebSocketException, TimeoutError, ValueError) as e:
            exit_stack.close()
            raise ConnectFailed() from e

        return StreamConnection(websocket, url, exit_stack)
