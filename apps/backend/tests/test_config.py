from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from camfleet.config import BackoffConfig, DiscoveryConfig, OrchestratorSettings, SettingsStore, migrate_settings
from camfleet.errors import SettingsError


def test_missing_settings_file_uses_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "absent.json", cli_data_dir=str(tmp_path / "data"))
    settings = store.settings

    assert settings.data_dir == str((tmp_path / "data").resolve())
    assert settings.log_level == "info"
    assert settings.backoff.min_delay_seconds == 1.0
    assert settings.backoff.max_delay_seconds == 60.0
    assert settings.backoff.max_restarts == 5
    assert settings.schedule.status_interval_seconds == 5.0
    assert settings.schedule.discovery_interval_seconds == 120.0
    assert settings.limits.max_streams is None
    assert settings.discovery.mode == "static"
    assert settings.cameras == []
    assert (tmp_path / "data" / "logs").is_dir()
    assert store.streams_dir() == (tmp_path / "data" / "streams").resolve()


def test_settings_file_values_are_loaded(tmp_path: Path) -> None:
    config_path = tmp_path / "camfleet.json"
    config_path.write_text(
        json.dumps(
            {
                "data_dir": str(tmp_path / "from-file"),
                "log_level": "DEBUG",
                "backoff": {"min_delay_seconds": 2, "max_delay_seconds": 30, "max_restarts": 3},
                "transcode": {"output_dir": "hls"},
                "discovery": {"mode": "file", "path": "inventory.json"},
                "cameras": [{"id": "cam-1", "source": "rtsp://10.0.0.1/s"}],
            }
        ),
        encoding="utf-8",
    )

    store = SettingsStore(config_path)
    settings = store.settings

    assert settings.data_dir == str((tmp_path / "from-file").resolve())
    assert settings.log_level == "debug"
    assert settings.backoff.max_restarts == 3
    assert settings.cameras[0].id == "cam-1"
    assert store.streams_dir() == (tmp_path / "hls").resolve()
    assert store.discovery_path() == tmp_path / "inventory.json"


def test_cli_data_dir_overrides_settings_file(tmp_path: Path) -> None:
    config_path = tmp_path / "camfleet.json"
    config_path.write_text(json.dumps({"data_dir": str(tmp_path / "from-file")}), encoding="utf-8")

    store = SettingsStore(config_path, cli_data_dir=str(tmp_path / "from-cli"))

    assert store.settings.data_dir == str((tmp_path / "from-cli").resolve())


def test_invalid_json_raises_settings_error(tmp_path: Path) -> None:
    config_path = tmp_path / "camfleet.json"
    config_path.write_text("[1, 2", encoding="utf-8")

    with pytest.raises(SettingsError, match="not valid JSON"):
        SettingsStore(config_path, cli_data_dir=str(tmp_path))


def test_non_object_settings_raise(tmp_path: Path) -> None:
    config_path = tmp_path / "camfleet.json"
    config_path.write_text("[]", encoding="utf-8")

    with pytest.raises(SettingsError, match="JSON object"):
        SettingsStore(config_path, cli_data_dir=str(tmp_path))


def test_invalid_values_raise_settings_error(tmp_path: Path) -> None:
    config_path = tmp_path / "camfleet.json"
    config_path.write_text(json.dumps({"backoff": {"min_delay_seconds": -1}}), encoding="utf-8")

    with pytest.raises(SettingsError, match="Invalid settings"):
        SettingsStore(config_path, cli_data_dir=str(tmp_path))


def test_unknown_log_level_rejected() -> None:
    with pytest.raises(ValidationError):
        OrchestratorSettings(data_dir="/tmp/camfleet", log_level="loud")


def test_file_discovery_requires_path() -> None:
    with pytest.raises(ValidationError):
        DiscoveryConfig(mode="file")


def test_backoff_cap_never_below_floor() -> None:
    config = BackoffConfig(min_delay_seconds=10, max_delay_seconds=2)
    assert config.max_delay_seconds == 10


def test_blank_camera_source_rejected() -> None:
    with pytest.raises(ValidationError):
        OrchestratorSettings(data_dir="/tmp/camfleet", cameras=[{"id": "cam-1", "source": "  "}])


def test_migrate_moves_legacy_stream_cap() -> None:
    migrated = migrate_settings({"max_concurrent_streams": 8, "cameras": []}, "/data")

    assert "max_concurrent_streams" not in migrated
    assert migrated["limits"] == {"max_streams": 8}
    assert migrated["data_dir"] == "/data"
    assert OrchestratorSettings.model_validate(migrated).limits.max_streams == 8
