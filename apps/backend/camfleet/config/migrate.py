from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from camfleet.errors import SettingsError
from camfleet.util.paths import ensure_data_tree, resolve_data_dir

from .defaults import APP_VERSION, DEFAULT_LOG_LEVEL, default_data_dir
from .schema import OrchestratorSettings


class SettingsStore:
    """Loads orchestrator settings from a JSON file and prepares the data tree.

    The file is optional; every missing key falls back to a default. The data
    directory is chosen from the CLI override, then the file, then the
    platform default.
    """

    def __init__(self, config_path: str | Path | None = None, cli_data_dir: str | None = None) -> None:
        self.config_path = Path(config_path).expanduser() if config_path else None
        raw_settings = self._read_json(self.config_path) if self.config_path else {}

        configured = raw_settings.get("data_dir")
        chosen_dir = resolve_data_dir(cli_data_dir or configured or str(default_data_dir()))
        self._data_tree = ensure_data_tree(chosen_dir)

        migrated = migrate_settings(raw_settings, str(chosen_dir))
        try:
            self._settings = OrchestratorSettings.model_validate(migrated)
        except ValidationError as exc:
            raise SettingsError(f"Invalid settings in {self.config_path}: {exc}") from exc
        self._settings.data_dir = str(chosen_dir)

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    @property
    def data_tree(self) -> dict[str, Path]:
        return self._data_tree

    def streams_dir(self) -> Path:
        configured = self._settings.transcode.output_dir
        if configured:
            path = Path(configured).expanduser()
            if not path.is_absolute() and self.config_path is not None:
                path = self.config_path.parent / path
            path.mkdir(parents=True, exist_ok=True)
            return path.resolve()
        return self._data_tree["streams"]

    def discovery_path(self) -> Path | None:
        configured = self._settings.discovery.path
        if not configured:
            return None
        path = Path(configured).expanduser()
        if not path.is_absolute() and self.config_path is not None:
            path = self.config_path.parent / path
        return path

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SettingsError(f"Settings file {path} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise SettingsError(f"Settings file {path} could not be read: {exc}") from exc
        if not isinstance(payload, dict):
            raise SettingsError(f"Settings file {path} must contain a JSON object")
        return payload


def migrate_settings(raw: dict[str, Any], data_dir: str) -> dict[str, Any]:
    if not raw:
        return {
            "version": APP_VERSION,
            "data_dir": data_dir,
            "log_level": DEFAULT_LOG_LEVEL,
            "backoff": {},
            "schedule": {},
            "timeouts": {},
            "limits": {},
            "transcode": {},
            "discovery": {"mode": "static", "path": None},
            "cameras": [],
        }

    migrated = dict(raw)
    migrated.setdefault("version", APP_VERSION)
    migrated.setdefault("data_dir", data_dir)
    migrated.setdefault("log_level", DEFAULT_LOG_LEVEL)
    for section in ("backoff", "schedule", "timeouts", "limits", "transcode"):
        migrated.setdefault(section, {})
    migrated.setdefault("discovery", {"mode": "static", "path": None})
    migrated.setdefault("cameras", [])

    # Older files kept the stream cap at the top level.
    if "max_concurrent_streams" in migrated:
        limits = dict(migrated["limits"])
        limits.setdefault("max_streams", migrated.pop("max_concurrent_streams"))
        migrated["limits"] = limits
    return migrated
