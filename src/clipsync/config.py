#!/usr/bin/env python3
"""Resolved configuration for the sync core.

The core only consumes a SyncConfig value. This module builds one from
defaults, an optional TOML file and command line overrides, in that order.

File layout (all sections and keys optional):

    [sync]
    interval_ms = 200
    retry_delay_ms = 5000
    max_retry_delay_ms = 60000
    heartbeat_interval_ms = 30000

    [client]
    server_host = "10.211.55.2"
    server_port = 9877

    [storage]
    max_history = 100
    max_content_size_mb = 10      # or max_content_size_bytes = ...
"""

from __future__ import annotations

import enum
import json
import logging
import os
import socket
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from clipsync import defaults
from clipsync.errors import ConfigError

logger = logging.getLogger(__name__)


class SyncMode(str, enum.Enum):
    """How the engine reaches its peer."""

    CONNECT = "connect"
    LISTEN = "listen"
    RELAY = "relay"


@dataclass(frozen=True)
class SyncConfig:
    """Resolved configuration consumed by the sync core.

    Attributes:
        peer_address: host:port for stream modes, base URL for relay mode.
        mode: Transport variant and role.
        poll_interval_ms: Clipboard poll interval.
        max_content_size_bytes: Largest payload sent or accepted.
        max_history_items: Relay store capacity.
        heartbeat_interval_ms: Interval between liveness probes.
        heartbeat_max_failures: Consecutive failed probes before reconnect.
        reconnect_delay_ms: First delay after a failed connect or lost link.
        max_reconnect_delay_ms: Upper bound for the reconnect delay.
        reconnect_backoff: Growth factor of the reconnect delay.
        source_id: Identifier stamped on outgoing updates.
        backend: Forced clipboard backend name, or None to probe.
    """

    peer_address: str = f"127.0.0.1:{defaults.STREAM_PORT}"
    mode: SyncMode = SyncMode.CONNECT
    poll_interval_ms: int = defaults.POLL_INTERVAL_MS
    max_content_size_bytes: int = defaults.MAX_CONTENT_SIZE_BYTES
    max_history_items: int = defaults.MAX_HISTORY_ITEMS
    heartbeat_interval_ms: int = defaults.HEARTBEAT_INTERVAL_MS
    heartbeat_max_failures: int = defaults.HEARTBEAT_MAX_FAILURES
    reconnect_delay_ms: int = defaults.RECONNECT_DELAY_MS
    max_reconnect_delay_ms: int = defaults.MAX_RECONNECT_DELAY_MS
    reconnect_backoff: float = defaults.RECONNECT_BACKOFF
    source_id: str = field(default_factory=socket.gethostname)
    backend: str | None = None

    def __post_init__(self) -> None:
        positive = (
            "poll_interval_ms",
            "max_content_size_bytes",
            "max_history_items",
            "heartbeat_interval_ms",
            "heartbeat_max_failures",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.reconnect_delay_ms < 0:
            raise ConfigError("reconnect_delay_ms must not be negative")
        if self.max_reconnect_delay_ms < self.reconnect_delay_ms:
            raise ConfigError("max_reconnect_delay_ms must be >= reconnect_delay_ms")
        if self.reconnect_backoff < 1.0:
            raise ConfigError("reconnect_backoff must be >= 1.0")

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def heartbeat_interval(self) -> float:
        return self.heartbeat_interval_ms / 1000

    @property
    def reconnect_delay(self) -> float:
        return self.reconnect_delay_ms / 1000

    @property
    def max_reconnect_delay(self) -> float:
        return self.max_reconnect_delay_ms / 1000

    def with_overrides(self, **overrides: Any) -> SyncConfig:
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        if "mode" in changes:
            changes["mode"] = SyncMode(changes["mode"])
        return replace(self, **changes)


def default_config_path() -> Path:
    """Return $XDG_CONFIG_HOME/clipsync/config.toml (or ~/.config/...)."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(Path.home(), ".config")
    return Path(base) / "clipsync" / "config.toml"


# (section, key) in the file -> (SyncConfig field, converter)
_FILE_KEYS: dict[tuple[str, str], tuple[str, Any]] = {
    ("sync", "interval_ms"): ("poll_interval_ms", int),
    ("sync", "retry_delay_ms"): ("reconnect_delay_ms", int),
    ("sync", "max_retry_delay_ms"): ("max_reconnect_delay_ms", int),
    ("sync", "retry_backoff"): ("reconnect_backoff", float),
    ("sync", "heartbeat_interval_ms"): ("heartbeat_interval_ms", int),
    ("sync", "heartbeat_max_failures"): ("heartbeat_max_failures", int),
    ("sync", "source"): ("source_id", str),
    ("sync", "backend"): ("backend", str),
    ("storage", "max_history"): ("max_history_items", int),
    ("storage", "max_content_size_mb"): ("max_content_size_bytes", lambda v: int(v) * 1024 * 1024),
    ("storage", "max_content_size_bytes"): ("max_content_size_bytes", int),
}


def _values_from_file(data: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for (section, key), (name, convert) in _FILE_KEYS.items():
        table = data.get(section, {})
        if key in table:
            try:
                values[name] = convert(table[key])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for [{section}] {key}: {e}") from e
    client = data.get("client", {})
    if "server_host" in client:
        host = str(client["server_host"])
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        port = client.get("server_port", defaults.STREAM_PORT)
        values["peer_address"] = f"{host}:{port}"
    return values


def load_config(path: Path | None = None) -> SyncConfig:
    """Load configuration from a TOML file.

    A missing file yields the defaults. Unknown sections and keys are ignored.

    Args:
        path: File to read, or None for default_config_path().

    Returns:
        The resolved SyncConfig.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values.
    """
    config_path = path or default_config_path()
    if not config_path.exists():
        logger.debug("No config file at %s, using defaults", config_path)
        return SyncConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    logger.debug("Loaded config file %s", config_path)
    return SyncConfig(**_values_from_file(data))


def _toml_value(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value)
    return repr(value)


def render_config(config: SyncConfig) -> str:
    """Render a config as TOML in the layout load_config() reads.

    The connection mode is a command line choice and is not written.
    """
    sections: dict[str, list[tuple[str, Any]]] = {"sync": [], "client": [], "storage": []}
    for (section, key), (name, _) in _FILE_KEYS.items():
        value = getattr(config, name)
        if value is None or name == "max_content_size_bytes":
            continue
        sections[section].append((key, value))

    host, sep, port = config.peer_address.rpartition(":")
    if sep and port.isdigit():
        sections["client"] = [("server_host", host.strip("[]")), ("server_port", int(port))]
    else:
        sections["client"] = [("server_host", config.peer_address)]

    size = config.max_content_size_bytes
    if size % (1024 * 1024) == 0:
        sections["storage"].append(("max_content_size_mb", size // (1024 * 1024)))
    else:
        sections["storage"].append(("max_content_size_bytes", size))

    lines = []
    for section, entries in sections.items():
        if lines:
            lines.append("")
        lines.append(f"[{section}]")
        lines.extend(f"{key} = {_toml_value(value)}" for key, value in entries)
    return "\n".join(lines) + "\n"


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    """Write the default configuration to a file.

    Args:
        path: Target file, or None for default_config_path().
        force: Overwrite an existing file.

    Returns:
        The path written.

    Raises:
        ConfigError: If the file exists and force is not set, or cannot be written.
    """
    config_path = path or default_config_path()
    if config_path.exists() and not force:
        raise ConfigError(f"Config file {config_path} already exists")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(render_config(SyncConfig()))
    except OSError as e:
        raise ConfigError(f"Cannot write config file {config_path}: {e}") from e
    logger.info("Wrote default config to %s", config_path)
    return config_path
