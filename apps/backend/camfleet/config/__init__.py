"""Settings schema and loading for camfleet."""

from .migrate import SettingsStore, migrate_settings
from .schema import (
    BackoffConfig,
    CameraConfig,
    DiscoveryConfig,
    LimitsConfig,
    OrchestratorSettings,
    ScheduleConfig,
    TimeoutConfig,
    TranscodeConfig,
)

__all__ = [
    "SettingsStore",
    "migrate_settings",
    "BackoffConfig",
    "CameraConfig",
    "DiscoveryConfig",
    "LimitsConfig",
    "OrchestratorSettings",
    "ScheduleConfig",
    "TimeoutConfig",
    "TranscodeConfig",
]
