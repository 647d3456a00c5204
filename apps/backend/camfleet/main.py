from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from camfleet.config.migrate import SettingsStore
from camfleet.discovery.base import CameraDiscoveryProvider
from camfleet.discovery.providers import CompositeDiscoveryProvider, JsonFileDiscoveryProvider, StaticDiscoveryProvider
from camfleet.errors import SettingsError
from camfleet.launcher.base import ProcessLauncher
from camfleet.launcher.ffmpeg import FfmpegLauncher
from camfleet.orchestrator.runtime import TranscodingOrchestrator
from camfleet.util.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_discovery_provider(settings_store: SettingsStore) -> CameraDiscoveryProvider:
    settings = settings_store.settings
    mode = settings.discovery.mode
    static = StaticDiscoveryProvider(settings.cameras)
    if mode == "static":
        return static
    path = settings_store.discovery_path()
    if path is None:
        raise SettingsError(f"discovery mode '{mode}' needs discovery.path")
    file_provider = JsonFileDiscoveryProvider(path)
    if mode == "file":
        return file_provider
    return CompositeDiscoveryProvider([static, file_provider])


def build_launcher(settings_store: SettingsStore) -> ProcessLauncher:
    settings = settings_store.settings
    return FfmpegLauncher(
        settings.transcode,
        settings_store.streams_dir(),
        launch_grace_seconds=settings.timeouts.launch_grace_seconds,
    )


@dataclass
class OrchestratorState:
    settings_store: SettingsStore
    log_level: str
    provider: CameraDiscoveryProvider
    launcher: ProcessLauncher
    orchestrator: TranscodingOrchestrator
    data_dir: Path
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _shutdown_started: bool = field(default=False, init=False, repr=False)
    _shutdown_complete: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        config_path: str | None = None,
        data_dir: str | None = None,
        log_level: str | None = None,
        launcher: ProcessLauncher | None = None,
        configure_logging: bool = True,
    ) -> "OrchestratorState":
        settings_store = SettingsStore(config_path=config_path, cli_data_dir=data_dir)
        settings = settings_store.settings
        level = log_level or settings.log_level
        data_path = Path(settings.data_dir)
        if configure_logging:
            setup_logging(level, data_path)

        provider = build_discovery_provider(settings_store)
        launcher = launcher or build_launcher(settings_store)
        orchestrator = TranscodingOrchestrator.from_settings(settings, provider, launcher)
        logger.info(
            "camfleet configured: discovery=%s data_dir=%s status every %.0fs, discovery every %.0fs",
            settings.discovery.mode,
            data_path,
            settings.schedule.status_interval_seconds,
            settings.schedule.discovery_interval_seconds,
        )
        return cls(
            settings_store=settings_store,
            log_level=level,
            provider=provider,
            launcher=launcher,
            orchestrator=orchestrator,
            data_dir=data_path,
        )

    def start(self) -> None:
        result = self.orchestrator.start_background()
        if result.error:
            logger.error("initial discovery failed, workers will start on the next discovery tick: %s", result.error)

    def begin_shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True
        forced = self.orchestrator.shutdown()
        if forced:
            logger.warning("force-stopped workers during shutdown: %s", ", ".join(forced))

    def shutdown(self) -> None:
        self.begin_shutdown()
        with self._shutdown_lock:
            if self._shutdown_complete:
                return
            self._shutdown_complete = True
        logger.info("camfleet shutdown complete")
