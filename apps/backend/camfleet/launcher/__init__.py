"""Process launchers for transcoding workers."""

from .base import ProcessHandle, ProcessLauncher, WorkerSpec
from .ffmpeg import FfmpegLauncher, FfmpegProcessHandle, build_ffmpeg_hls_command

__all__ = [
    "ProcessHandle",
    "ProcessLauncher",
    "WorkerSpec",
    "FfmpegLauncher",
    "FfmpegProcessHandle",
    "build_ffmpeg_hls_command",
]
