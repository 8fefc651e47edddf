from __future__ import annotations

from pathlib import Path

import pytest

from blebridge.core.config_loader import load_config, normalize_uuid
from blebridge.core.errors import ConfigLoadError, ConfigValidationError
from blebridge.core.model import DisplayType, PresentationFormat


def _write_config(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_config_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))


def test_load_packaged_defaults() -> None:
    loaded = load_config()
    bridge = loaded.config.bridge
    assert bridge.host == "127.0.0.1"
    assert bridge.port == 12345
    assert bridge.period_ms == 8
    assert bridge.close_grace_s == 0.5
    assert loaded.config.use_cached_reads is True
    assert loaded.config.characteristics == {}
    assert loaded.warnings == ()


def test_user_config_overrides_defaults(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "blebridge" / "config.yaml",
        """
bridge:
  port: 5000
  period_ms: 4
reads:
  use_cached: false
characteristics:
  "2a19":
    presentation_hint: uint8
  00004a37-0000-1000-8000-00805F9B34FB:
    display_type: stream
""",
    )

    config = load_config().config
    assert config.bridge.port == 5000
    assert config.bridge.period_ms == 4
    assert config.bridge.host == "127.0.0.1"
    assert config.use_cached_reads is False

    battery = config.characteristic("00002a19-0000-1000-8000-00805f9b34fb")
    assert battery.presentation_hint is PresentationFormat.UINT8
    assert battery.display_type is DisplayType.UNSET

    stream = config.characteristic("00004A37-0000-1000-8000-00805f9b34fb")
    assert stream.display_type is DisplayType.STREAM


def test_user_override_of_default_warns(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "blebridge" / "config.yaml",
        """
bridge:
  port: 5000
  host: "127.0.0.1"
characteristics:
  "2a19":
    display_type: hex
""",
    )

    loaded = load_config()
    assert loaded.config.bridge.port == 5000
    assert len(loaded.warnings) == 1
    assert "'bridge.port'" in loaded.warnings[0]


def test_explicit_path_replaces_user_config(tmp_path: Path) -> None:
    _write_config(tmp_path / "cfg" / "blebridge" / "config.yaml", "bridge:\n  port: 5000\n")
    explicit = tmp_path / "explicit.yaml"
    _write_config(explicit, "bridge:\n  host: 10.0.0.2\n")

    config = load_config(explicit).config
    assert config.bridge.host == "10.0.0.2"
    assert config.bridge.port == 12345


def test_missing_explicit_path_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "nope.yaml")


def test_schema_violation_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path / "cfg" / "blebridge" / "config.yaml", "bridge:\n  port: not-a-port\n")

    with pytest.raises(ConfigValidationError) as exc:
        load_config()
    assert "bridge.port" in str(exc.value)


def test_unknown_key_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path / "cfg" / "blebridge" / "config.yaml", "bridge:\n  retries: 3\n")

    with pytest.raises(ConfigValidationError):
        load_config()


def test_duplicate_yaml_keys_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "blebridge" / "config.yaml",
        """
bridge:
  port: 5000
  port: 5001
""",
    )

    with pytest.raises(ConfigValidationError):
        load_config()


def test_unknown_presentation_hint_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "blebridge" / "config.yaml",
        """
characteristics:
  "2a19":
    presentation_hint: uint7
""",
    )

    with pytest.raises(ConfigValidationError) as exc:
        load_config()
    assert "uint8" in str(exc.value)


def test_hint_with_forced_display_type_warns(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "blebridge" / "config.yaml",
        """
characteristics:
  "2a19":
    presentation_hint: uint8
    display_type: hex
""",
    )

    loaded = load_config()
    assert any("presentation_hint is ignored" in warning for warning in loaded.warnings)


def test_empty_user_config_is_allowed(tmp_path: Path) -> None:
    _write_config(tmp_path / "cfg" / "blebridge" / "config.yaml", "")
    assert load_config().config.bridge.port == 12345


def test_normalize_uuid_expands_short_forms() -> None:
    assert normalize_uuid("2A19", context="uuid") == "00002a19-0000-1000-8000-00805f9b34fb"
    assert normalize_uuid("00002a19", context="uuid") == "00002a19-0000-1000-8000-00805f9b34fb"
    with pytest.raises(ConfigValidationError):
        normalize_uuid("xyz", context="uuid")
