"""
Stream Watchdog - liveness monitor for a real-time streaming API

Keeps a subscription open to a streaming endpoint, notices when it goes
silent or disconnects, runs an operator-supplied recovery command and
reports every step to Sentry.
"""

__version__ = "1.0.0"

from .config import ConfigError, Settings, WatchdogConfig
from .session import MonitoringSession, Outcome
from .telemetry import Telemetry
from .watchdog import StreamWatchdog

__all__ = [
    "ConfigError",
    "MonitoringSession",
    "Outcome",
    "Settings",
    "StreamWatchdog",
    "Telemetry",
    "WatchdogConfig",
]
