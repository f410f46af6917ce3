"""Configuration management for Stream Watchdog."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_PATH = "/streaming"
DEFAULT_TIMEOUT = 10  # seconds of silence before a session is considered dead
DEFAULT_COOLDOWN = 300  # seconds to wait after recovery before reconnecting

# Prefixes stripped from a bare domain before building the streaming URL
_SCHEME_PREFIXES = ("https://", "http://", "wss://", "ws://")

CONFIG_TEMPLATE = """target:
  domain: '' # Required (e.g., misskey.io)
  # url: '' # Optional: Overrides domain if set (e.g., wss://misskey.io/streaming)
timeout: 10
cooldown: 300 # Seconds to wait before reconnecting after a failure
command: ./script.sh
sentry:
  dsn: '' # e.g. https://public@sentry.example.com/1
"""


class ConfigError(Exception):
    """Raised when the configuration cannot be turned into usable settings."""


def _positive_int(value: Any, default: int) -> int:
    """Return value if it is a positive integer, otherwise the default."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return default
    return value


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping, got {type(section).__name__}")
    return section


def _optional_str(section: dict[str, Any], key: str, path: str) -> Optional[str]:
    value = section.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ConfigError(f"'{path}' must be a string, got {type(value).__name__}")
    return value


def resolve_target_url(domain: Optional[str], url: Optional[str]) -> str:
    """Resolve the streaming endpoint from the target section.

    An explicit ``url`` is returned verbatim. Otherwise the bare ``domain``
    is stripped of any scheme prefix and trailing slash and turned into
    ``wss://<domain>/streaming``.
    """
    for name, value in (("target.url", url), ("target.domain", domain)):
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"'{name}' must be a string, got {type(value).__name__}")

    if url:
        return url

    if domain:
        clean = domain.strip()
        for prefix in _SCHEME_PREFIXES:
            if clean.startswith(prefix):
                clean = clean[len(prefix):]
                break
        clean = clean.rstrip("/")
        if clean:
            return f"wss://{clean}{DEFAULT_PATH}"

    raise ConfigError(
        "target.domain or target.url must be specified in the configuration file"
    )


def write_template(path: Union[str, Path]) -> bool:
    """Write the sample configuration. Returns False if the file already exists."""
    path = Path(path)
    if path.exists():
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CONFIG_TEMPLATE)
    return True


@dataclass
class TargetConfig:
    """Where the streaming endpoint lives."""

    domain: Optional[str] = None
    url: Optional[str] = None


@dataclass
class SentryConfig:
    """Telemetry sink credentials."""

    dsn: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    """Validated settings consumed by the watchdog core."""

    target_url: str
    idle_timeout: float = float(DEFAULT_TIMEOUT)
    cooldown: float = float(DEFAULT_COOLDOWN)
    command: str = ""
    sentry_dsn: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class WatchdogConfig:
    """Raw configuration document as written by the operator."""

    target: TargetConfig = field(default_factory=TargetConfig)
    timeout: int = DEFAULT_TIMEOUT
    cooldown: int = DEFAULT_COOLDOWN
    command: str = ""
    sentry: SentryConfig = field(default_factory=SentryConfig)

    # Local logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "WatchdogConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "WatchdogConfig":
        """Create configuration from dictionary."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"Configuration must be a mapping, got {type(data).__name__}"
            )

        target = _section(data, "target")
        sentry = _section(data, "sentry")

        command = data.get("command")
        return cls(
            target=TargetConfig(
                domain=_optional_str(target, "domain", "target.domain"),
                url=_optional_str(target, "url", "target.url"),
            ),
            timeout=_positive_int(data.get("timeout"), DEFAULT_TIMEOUT),
            cooldown=_positive_int(data.get("cooldown"), DEFAULT_COOLDOWN),
            command=str(command) if command is not None else "",
            sentry=SentryConfig(dsn=_optional_str(sentry, "dsn", "sentry.dsn")),
            log_level=str(data.get("log_level") or "INFO"),
            log_file=data.get("log_file") or None,
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        try:
            resolve_target_url(self.target.domain, self.target.url)
        except ConfigError as e:
            errors.append(str(e))

        return errors

    def warnings(self) -> list[str]:
        """Non-fatal problems worth telling the operator about."""
        warnings = []

        if not self.command.split():
            warnings.append("command is empty; no recovery will be attempted")

        if not self.sentry.dsn:
            warnings.append("sentry.dsn is empty; events are only logged locally")

        return warnings

    def to_settings(self) -> Settings:
        """Resolve the target and apply defaults, producing immutable settings."""
        return Settings(
            target_url=resolve_target_url(self.target.domain, self.target.url),
            idle_timeout=float(_positive_int(self.timeout, DEFAULT_TIMEOUT)),
            cooldown=float(_positive_int(self.cooldown, DEFAULT_COOLDOWN)),
            command=self.command,
            sentry_dsn=self.sentry.dsn,
            log_level=self.log_level,
            log_file=self.log_file,
        )

    def to_dict(self) -> dict[str, Any]:
        """Export configuration to dictionary."""
        return {
            "target": {"domain": self.target.domain, "url": self.target.url},
            "timeout": self.timeout,
            "cooldown": self.cooldown,
            "command": self.command,
            "sentry": {"dsn": self.sentry.dsn},
            "log_level": self.log_level,
            "log_file": self.log_file,
        }
