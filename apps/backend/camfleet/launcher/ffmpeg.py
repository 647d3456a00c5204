"""FFmpeg-backed launcher producing one HLS playlist per camera."""
from __future__ import annotations

import subprocess
import threading
from collections import deque
from pathlib import Path

from camfleet.config.schema import TranscodeConfig
from camfleet.errors import LaunchError, TerminateError
from camfleet.util.logging import get_logger
from camfleet.util.security import redact_secrets, safe_file_stem, sanitize_rtsp_url

from .base import ProcessHandle, ProcessLauncher, WorkerSpec

logger = get_logger(__name__)


def build_ffmpeg_hls_command(source_uri: str, playlist_path: Path, config: TranscodeConfig) -> list[str]:
    segment_pattern = playlist_path.with_name(f"{playlist_path.stem}_%03d.ts")
    return [
        config.ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "warning",
        "-nostdin",
        *config.input_args,
        "-i",
        source_uri,
        "-c:v",
        config.video_codec,
        "-c:a",
        config.audio_codec,
        "-f",
        "hls",
        "-hls_time",
        str(config.segment_seconds),
        "-hls_list_size",
        str(config.hls_list_size),
        "-hls_flags",
        config.hls_flags,
        "-hls_segment_filename",
        str(segment_pattern),
        str(playlist_path),
    ]


class FfmpegProcessHandle(ProcessHandle):
    def __init__(self, camera_id: str, process: subprocess.Popen, history: int = 20) -> None:
        self.camera_id = camera_id
        self.process = process
        self._lines: deque[str] = deque(maxlen=history)
        self._lines_lock = threading.Lock()
        self._stderr_thread: threading.Thread | None = None
        if process.stderr is not None:
            self._stderr_thread = threading.Thread(
                target=self._drain_stderr,
                name=f"ffmpeg-stderr-{camera_id}",
                daemon=True,
            )
            self._stderr_thread.start()

    @property
    def pid(self) -> int | None:
        return self.process.pid

    def poll(self) -> int | None:
        return self.process.poll()

    def wait(self, timeout: float) -> int | None:
        try:
            return self.process.wait(timeout=max(0.0, timeout))
        except subprocess.TimeoutExpired:
            return None

    @property
    def last_output(self) -> str | None:
        with self._lines_lock:
            return self._lines[-1] if self._lines else None

    def close(self, timeout: float = 1.0) -> None:
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=timeout)

    def _drain_stderr(self) -> None:
        stream = self.process.stderr
        if stream is None:
            return
        for raw in iter(stream.readline, b""):
            text = redact_secrets(raw.decode(errors="ignore").strip())
            if not text:
                continue
            with self._lines_lock:
                self._lines.append(text)
            logger.debug("[%s] ffmpeg: %s", self.camera_id, text)
        stream.close()


class FfmpegLauncher(ProcessLauncher):
    def __init__(self, config: TranscodeConfig, output_dir: Path, launch_grace_seconds: float = 1.0) -> None:
        self.config = config
        self.output_dir = Path(output_dir)
        self.launch_grace_seconds = launch_grace_seconds

    def playlist_path(self, camera_id: str) -> Path:
        return self.output_dir / f"{safe_file_stem(camera_id)}.m3u8"

    def launch(self, spec: WorkerSpec) -> ProcessHandle:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        command = build_ffmpeg_hls_command(spec.source_uri, self.playlist_path(spec.camera_id), self.config)
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                bufsize=0,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except FileNotFoundError as exc:
            raise LaunchError(f"ffmpeg executable not found: {self.config.ffmpeg_path}") from exc
        except OSError as exc:
            raise LaunchError(f"ffmpeg could not be started: {exc}") from exc

        handle = FfmpegProcessHandle(spec.camera_id, process)
        if self.launch_grace_seconds > 0:
            code = handle.wait(self.launch_grace_seconds)
            if code is not None:
                handle.close()
                detail = handle.last_output or "no output"
                raise LaunchError(f"ffmpeg exited during startup with code {code}: {detail}")
        logger.info(
            "ffmpeg started for %s (pid %s) from %s",
            spec.camera_id,
            handle.pid,
            sanitize_rtsp_url(spec.source_uri),
        )
        return handle

    def terminate(self, handle: ProcessHandle, timeout: float) -> bool:
        if not isinstance(handle, FfmpegProcessHandle):
            raise TypeError(f"unsupported handle type: {type(handle).__name__}")
        if handle.poll() is not None:
            handle.close()
            return True
        handle.process.terminate()
        exited = handle.wait(timeout) is not None
        if exited:
            handle.close()
        return exited

    def kill(self, handle: ProcessHandle) -> None:
        if not isinstance(handle, FfmpegProcessHandle):
            raise TypeError(f"unsupported handle type: {type(handle).__name__}")
        if handle.poll() is None:
            handle.process.kill()
            if handle.wait(2.0) is None:
                raise TerminateError(f"ffmpeg pid {handle.pid} for {handle.camera_id} survived SIGKILL")
        handle.close()
