#!/usr/bin/env python3
"""Tests for configuration defaults, file loading and overrides."""
from pathlib import Path

import pytest

from clipsync import defaults
from clipsync.config import (
    SyncConfig,
    SyncMode,
    default_config_path,
    load_config,
    render_config,
    write_default_config,
)
from clipsync.errors import ConfigError


def test_defaults() -> None:
    """Test the resolved defaults."""
    config = SyncConfig(source_id="host")

    assert config.poll_interval_ms == 200
    assert config.max_content_size_bytes == 10 * 1024 * 1024
    assert config.max_history_items == 100
    assert config.reconnect_delay_ms == defaults.RECONNECT_DELAY_MS
    assert config.mode is SyncMode.CONNECT
    assert config.poll_interval == pytest.approx(0.2)
    assert config.reconnect_delay == pytest.approx(5.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"poll_interval_ms": 0},
        {"heartbeat_max_failures": 0},
        {"reconnect_delay_ms": -1},
        {"reconnect_delay_ms": 10, "max_reconnect_delay_ms": 5},
        {"reconnect_backoff": 0.5},
    ],
)
def test_invalid_values_rejected(kwargs) -> None:
    """Test invalid values raise ConfigError."""
    with pytest.raises(ConfigError):
        SyncConfig(**kwargs)


def test_with_overrides_ignores_none() -> None:
    """Test None overrides keep the current value."""
    config = SyncConfig(poll_interval_ms=300).with_overrides(poll_interval_ms=None, mode="relay")

    assert config.poll_interval_ms == 300
    assert config.mode is SyncMode.RELAY


def test_with_overrides_rejects_unknown_key() -> None:
    """Test an unknown key is a ConfigError."""
    with pytest.raises(ConfigError, match="Unknown"):
        SyncConfig().with_overrides(colour="blue")


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    """Test a missing config file is not an error."""
    config = load_config(tmp_path / "absent.toml")

    assert config.poll_interval_ms == defaults.POLL_INTERVAL_MS


def test_load_file_sections(tmp_path: Path) -> None:
    """Test values are read from every supported section."""
    path = tmp_path / "config.toml"
    path.write_text(
        "[sync]\n"
        "interval_ms = 500\n"
        "retry_delay_ms = 1000\n"
        "source = \"laptop\"\n"
        "\n"
        "[client]\n"
        "server_host = \"10.0.0.2\"\n"
        "server_port = 9000\n"
        "\n"
        "[storage]\n"
        "max_history = 20\n"
        "max_content_size_mb = 2\n"
        "\n"
        "[unknown]\n"
        "ignored = true\n"
    )

    config = load_config(path)

    assert config.poll_interval_ms == 500
    assert config.reconnect_delay_ms == 1000
    assert config.source_id == "laptop"
    assert config.peer_address == "10.0.0.2:9000"
    assert config.max_history_items == 20
    assert config.max_content_size_bytes == 2 * 1024 * 1024


def test_load_invalid_toml(tmp_path: Path) -> None:
    """Test a syntax error is reported as ConfigError."""
    path = tmp_path / "config.toml"
    path.write_text("[sync\ninterval_ms = ")

    with pytest.raises(ConfigError, match="Cannot read"):
        load_config(path)


def test_load_invalid_value(tmp_path: Path) -> None:
    """Test a value that fails conversion is reported as ConfigError."""
    path = tmp_path / "config.toml"
    path.write_text("[sync]\ninterval_ms = \"fast\"\n")

    with pytest.raises(ConfigError, match="interval_ms"):
        load_config(path)


def test_default_config_path_uses_xdg(monkeypatch, tmp_path: Path) -> None:
    """Test XDG_CONFIG_HOME is honored."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    assert default_config_path() == tmp_path / "clipsync" / "config.toml"


def test_ipv6_server_host_is_bracketed(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("[client]\nserver_host = \"::1\"\nserver_port = 9000\n")

    assert load_config(path).peer_address == "[::1]:9000"


def test_rendered_config_loads_back(tmp_path: Path) -> None:
    """Test render_config writes the layout load_config reads."""
    original = SyncConfig(
        peer_address="10.0.0.2:9000",
        poll_interval_ms=350,
        max_content_size_bytes=1500,
        max_history_items=7,
        source_id="desk \"1\"",
        backend="x11",
    )
    path = tmp_path / "config.toml"
    path.write_text(render_config(original))

    assert load_config(path) == original


def test_write_default_config(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.toml"

    assert write_default_config(path) == path
    assert "max_content_size_mb = 10" in path.read_text()
    assert load_config(path).poll_interval_ms == defaults.POLL_INTERVAL_MS
    with pytest.raises(ConfigError, match="already exists"):
        write_default_config(path)
