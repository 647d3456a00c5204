from __future__ import annotations

from pathlib import Path

from camfleet.util.paths import platform_default_data_dir

APP_VERSION = 1
DEFAULT_LOG_LEVEL = "info"

DEFAULT_BACKOFF_MIN_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 60.0
DEFAULT_MAX_RESTARTS = 5

DEFAULT_STATUS_INTERVAL_SECONDS = 5.0
DEFAULT_DISCOVERY_INTERVAL_SECONDS = 120.0

DEFAULT_LAUNCH_GRACE_SECONDS = 1.0
DEFAULT_STOP_TIMEOUT_SECONDS = 5.0
DEFAULT_STOP_ALL_TIMEOUT_SECONDS = 20.0
DEFAULT_LIVENESS_INTERVAL_SECONDS = 1.0

DEFAULT_START_CONCURRENCY = 4

DEFAULT_FFMPEG_PATH = "ffmpeg"
DEFAULT_VIDEO_CODEC = "libx264"
DEFAULT_AUDIO_CODEC = "aac"
DEFAULT_SEGMENT_SECONDS = 2
DEFAULT_HLS_LIST_SIZE = 5
DEFAULT_HLS_FLAGS = "delete_segments"


def default_data_dir() -> Path:
    return platform_default_data_dir()
