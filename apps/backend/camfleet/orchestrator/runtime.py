from __future__ import annotations

from typing import Any

from camfleet.config.schema import LimitsConfig, OrchestratorSettings, ScheduleConfig, TimeoutConfig
from camfleet.discovery.base import CameraDiscoveryProvider
from camfleet.launcher.base import ProcessLauncher
from camfleet.util.logging import get_logger

from .backoff import BackoffPolicy
from .reconcile import ReconcileResult, ReconciliationLoop
from .registry import WorkerRegistry
from .scheduler import PeriodicTask
from .status import StatusReporter
from .supervisor import TranscodeWorkerSupervisor

logger = get_logger(__name__)


class TranscodingOrchestrator:
    def __init__(
        self,
        provider: CameraDiscoveryProvider,
        launcher: ProcessLauncher,
        *,
        backoff: BackoffPolicy | None = None,
        schedule: ScheduleConfig | None = None,
        timeouts: TimeoutConfig | None = None,
        limits: LimitsConfig | None = None,
    ) -> None:
        schedule = schedule or ScheduleConfig()
        timeouts = timeouts or TimeoutConfig()
        limits = limits or LimitsConfig()

        self.registry = WorkerRegistry()
        self.supervisor = TranscodeWorkerSupervisor(
            self.registry,
            launcher,
            backoff or BackoffPolicy(),
            stop_timeout=timeouts.stop_timeout_seconds,
            liveness_interval=timeouts.liveness_interval_seconds,
        )
        self.loop = ReconciliationLoop(
            provider,
            self.registry,
            self.supervisor,
            start_concurrency=limits.start_concurrency,
            max_streams=limits.max_streams,
            stop_all_timeout=timeouts.stop_all_timeout_seconds,
        )
        self.reporter = StatusReporter(self.registry, self.loop)
        self._status_task = PeriodicTask("status-tick", schedule.status_interval_seconds, self._status_tick)
        self._discovery_task = PeriodicTask("discovery-tick", schedule.discovery_interval_seconds, self._discovery_tick)

    @classmethod
    def from_settings(
        cls,
        settings: OrchestratorSettings,
        provider: CameraDiscoveryProvider,
        launcher: ProcessLauncher,
    ) -> "TranscodingOrchestrator":
        return cls(
            provider,
            launcher,
            backoff=BackoffPolicy.from_config(settings.backoff),
            schedule=settings.schedule,
            timeouts=settings.timeouts,
            limits=settings.limits,
        )

    def start_all(self) -> ReconcileResult:
        return self.loop.start_all()

    def stop_all(self, timeout: float | None = None) -> list[str]:
        return self.loop.stop_all(timeout=timeout)

    def refresh_cameras(self) -> ReconcileResult:
        return self.loop.refresh_cameras()

    def get_status(self) -> dict[str, Any]:
        return self.reporter.get_status()

    def start_background(self) -> ReconcileResult:
        result = self.start_all()
        self._status_task.start()
        self._discovery_task.start()
        return result

    def shutdown(self, timeout: float | None = None) -> list[str]:
        self.supervisor.request_shutdown()
        self._discovery_task.stop()
        self._status_task.stop()
        forced = self.stop_all(timeout=timeout)
        logger.info("transcoding orchestrator stopped")
        return forced

    def _status_tick(self) -> None:
        status = self.get_status()
        logger.info(
            "transcoding status: %d/%d active, %d failed, %d parked",
            status["active"],
            status["total"],
            status["failed"],
            status["parked"],
        )
        for worker in status["workers"]:
            if worker["parked"]:
                logger.warning(
                    "worker %s is parked after %d failures: %s",
                    worker["camera_id"],
                    worker["restart_count"],
                    worker["last_error"],
                )

    def _discovery_tick(self) -> None:
        result = self.refresh_cameras()
        if result.error:
            logger.warning("discovery tick skipped: %s", result.error)
