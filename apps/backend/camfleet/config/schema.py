from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .defaults import (
    APP_VERSION,
    DEFAULT_AUDIO_CODEC,
    DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_BACKOFF_MIN_SECONDS,
    DEFAULT_DISCOVERY_INTERVAL_SECONDS,
    DEFAULT_FFMPEG_PATH,
    DEFAULT_HLS_FLAGS,
    DEFAULT_HLS_LIST_SIZE,
    DEFAULT_LAUNCH_GRACE_SECONDS,
    DEFAULT_LIVENESS_INTERVAL_SECONDS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_RESTARTS,
    DEFAULT_SEGMENT_SECONDS,
    DEFAULT_START_CONCURRENCY,
    DEFAULT_STATUS_INTERVAL_SECONDS,
    DEFAULT_STOP_ALL_TIMEOUT_SECONDS,
    DEFAULT_STOP_TIMEOUT_SECONDS,
    DEFAULT_VIDEO_CODEC,
)


class CameraConfig(BaseModel):
    id: str
    name: str | None = None
    source: str
    enabled: bool = True

    @field_validator("id", "source")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "value cannot be empty"
            raise ValueError(msg)
        return value


class BackoffConfig(BaseModel):
    min_delay_seconds: float = Field(default=DEFAULT_BACKOFF_MIN_SECONDS, gt=0)
    max_delay_seconds: float = Field(default=DEFAULT_BACKOFF_MAX_SECONDS, gt=0)
    max_restarts: int = Field(default=DEFAULT_MAX_RESTARTS, ge=0)

    @model_validator(mode="after")
    def cap_not_below_floor(self) -> "BackoffConfig":
        if self.max_delay_seconds < self.min_delay_seconds:
            self.max_delay_seconds = self.min_delay_seconds
        return self


class ScheduleConfig(BaseModel):
    status_interval_seconds: float = Field(default=DEFAULT_STATUS_INTERVAL_SECONDS, gt=0)
    discovery_interval_seconds: float = Field(default=DEFAULT_DISCOVERY_INTERVAL_SECONDS, gt=0)


class TimeoutConfig(BaseModel):
    launch_grace_seconds: float = Field(default=DEFAULT_LAUNCH_GRACE_SECONDS, ge=0)
    stop_timeout_seconds: float = Field(default=DEFAULT_STOP_TIMEOUT_SECONDS, gt=0)
    stop_all_timeout_seconds: float = Field(default=DEFAULT_STOP_ALL_TIMEOUT_SECONDS, gt=0)
    liveness_interval_seconds: float = Field(default=DEFAULT_LIVENESS_INTERVAL_SECONDS, gt=0)


class LimitsConfig(BaseModel):
    start_concurrency: int = Field(default=DEFAULT_START_CONCURRENCY, ge=1)
    max_streams: int | None = Field(default=None, ge=0)


class TranscodeConfig(BaseModel):
    ffmpeg_path: str = DEFAULT_FFMPEG_PATH
    video_codec: str = DEFAULT_VIDEO_CODEC
    audio_codec: str = DEFAULT_AUDIO_CODEC
    segment_seconds: int = Field(default=DEFAULT_SEGMENT_SECONDS, ge=1)
    hls_list_size: int = Field(default=DEFAULT_HLS_LIST_SIZE, ge=1)
    hls_flags: str = DEFAULT_HLS_FLAGS
    input_args: list[str] = Field(default_factory=lambda: ["-rtsp_transport", "tcp"])
    output_dir: str | None = None


class DiscoveryConfig(BaseModel):
    mode: Literal["static", "file", "composite"] = "static"
    path: str | None = None

    @model_validator(mode="after")
    def path_required_for_file_modes(self) -> "DiscoveryConfig":
        if self.mode in {"file", "composite"} and not (self.path or "").strip():
            msg = f"discovery.path is required for mode '{self.mode}'"
            raise ValueError(msg)
        return self


class OrchestratorSettings(BaseModel):
    version: int = APP_VERSION
    data_dir: str
    log_level: str = DEFAULT_LOG_LEVEL
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    cameras: list[CameraConfig] = Field(default_factory=list)

    @field_validator("data_dir")
    @classmethod
    def data_dir_not_empty(cls, value: str) -> str:
        if not value.strip():
            msg = "data_dir cannot be empty"
            raise ValueError(msg)
        return value

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, value: str) -> str:
        lowered = value.strip().lower()
        if lowered not in {"debug", "info", "warning", "error", "critical"}:
            msg = f"unknown log level: {value}"
            raise ValueError(msg)
        return lowered
