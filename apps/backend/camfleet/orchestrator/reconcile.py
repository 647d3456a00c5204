from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial

from camfleet.discovery.base import CameraDescriptor, CameraDiscoveryProvider
from camfleet.errors import DiscoveryError
from camfleet.util.logging import get_logger
from camfleet.util.time import monotonic, now_utc_iso

from .registry import WorkerRegistry, WorkerState
from .supervisor import TranscodeWorkerSupervisor

logger = get_logger(__name__)


@dataclass
class ReconcileResult:
    started: list[str] = field(default_factory=list)
    stopped: list[str] = field(default_factory=list)
    restarted: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.started or self.stopped or self.restarted or self.retried)


@dataclass
class DiscoveryState:
    last_success_at: str | None = None
    last_error: str | None = None
    last_error_at: str | None = None
    suppressed: dict[str, str] = field(default_factory=dict)
    deferred: list[str] = field(default_factory=list)


class ReconciliationLoop:
    def __init__(
        self,
        provider: CameraDiscoveryProvider,
        registry: WorkerRegistry,
        supervisor: TranscodeWorkerSupervisor,
        *,
        start_concurrency: int = 4,
        max_streams: int | None = None,
        stop_all_timeout: float = 20.0,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.supervisor = supervisor
        self.start_concurrency = max(1, start_concurrency)
        self.max_streams = max_streams
        self.stop_all_timeout = stop_all_timeout
        self._reconcile_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._discovery = DiscoveryState()

    def discovery_state(self) -> DiscoveryState:
        with self._state_lock:
            return DiscoveryState(
                last_success_at=self._discovery.last_success_at,
                last_error=self._discovery.last_error,
                last_error_at=self._discovery.last_error_at,
                suppressed=dict(self._discovery.suppressed),
                deferred=list(self._discovery.deferred),
            )

    @staticmethod
    def _resolve_enabled_cameras(
        cameras: Sequence[CameraDescriptor],
    ) -> tuple[dict[str, CameraDescriptor], dict[str, str]]:
        desired: dict[str, CameraDescriptor] = {}
        suppressed: dict[str, str] = {}

        for camera in cameras:
            if not camera.enabled:
                continue
            camera_id = str(camera.id or "")
            if not camera_id.strip():
                suppressed[camera_id or f"invalid-{len(suppressed) + 1}"] = "invalid_camera_id"
                logger.warning("camera suppressed due to blank camera id: %r", camera_id)
                continue
            if not str(camera.source_uri or "").strip():
                suppressed[camera_id] = "missing_source"
                logger.warning("camera suppressed due to missing source: %s", camera_id)
                continue
            if camera_id in desired:
                suppressed[camera_id] = "duplicate_camera_id"
                logger.warning("duplicate camera id in discovery snapshot, keeping first: %s", camera_id)
                continue
            desired[camera_id] = camera

        return desired, suppressed

    def _discover(self) -> dict[str, CameraDescriptor]:
        try:
            cameras = self.provider.list_cameras()
        except DiscoveryError as exc:
            self._record_discovery_error(str(exc))
            raise
        except Exception as exc:
            self._record_discovery_error(f"{type(exc).__name__}: {exc}")
            raise DiscoveryError(str(exc)) from exc

        desired, suppressed = self._resolve_enabled_cameras(cameras)
        with self._state_lock:
            self._discovery.last_success_at = now_utc_iso()
            self._discovery.last_error = None
            self._discovery.suppressed = suppressed
        return desired

    def _record_discovery_error(self, message: str) -> None:
        with self._state_lock:
            self._discovery.last_error = message
            self._discovery.last_error_at = now_utc_iso()
        logger.error("camera discovery failed; keeping current workers: %s", message)

    def _apply_stream_cap(self, candidates: list[CameraDescriptor], occupied: int) -> tuple[list[CameraDescriptor], list[str]]:
        if self.max_streams is None:
            return candidates, []
        capacity = max(0, self.max_streams - occupied)
        accepted = candidates[:capacity]
        deferred = [camera.id for camera in candidates[capacity:]]
        if deferred:
            logger.warning("stream limit %d reached; deferring %s", self.max_streams, ", ".join(deferred))
        return accepted, deferred

    def _run_concurrently(self, tasks: list[tuple[str, Callable[[], object]]]) -> None:
        if not tasks:
            return
        with ThreadPoolExecutor(max_workers=min(self.start_concurrency, len(tasks)), thread_name_prefix="reconcile") as pool:
            futures = {pool.submit(task): label for label, task in tasks}
            for future, label in futures.items():
                try:
                    future.result()
                except Exception:
                    logger.exception("reconcile action failed: %s", label)

    def start_all(self) -> ReconcileResult:
        self.supervisor.clear_shutdown()
        with self._reconcile_lock:
            try:
                desired = self._discover()
            except DiscoveryError as exc:
                return ReconcileResult(error=str(exc))

            with self.registry.lock:
                if self.supervisor.is_shutting_down:
                    return ReconcileResult(skipped=True)
                to_start: list[CameraDescriptor] = []
                for camera_id, camera in sorted(desired.items()):
                    worker = self.registry.get(camera_id)
                    if worker is not None and worker.state is not WorkerState.STOPPED:
                        continue
                    to_start.append(camera)
                occupied = len(self.registry) - sum(1 for camera in to_start if camera.id in self.registry)
                to_start, deferred = self._apply_stream_cap(to_start, occupied)
                for camera in to_start:
                    self.registry.ensure(camera.id, name=camera.name)

            with self._state_lock:
                self._discovery.deferred = deferred

            logger.info("starting transcoding for %d camera(s)", len(to_start))
            self._run_concurrently(
                [
                    (f"start {camera.id}", partial(self.supervisor.start, camera.id, camera.source_uri, camera.name))
                    for camera in to_start
                ]
            )
            return ReconcileResult(started=[camera.id for camera in to_start], deferred=deferred)

    def refresh_cameras(self) -> ReconcileResult:
        if self.supervisor.is_shutting_down:
            return ReconcileResult(skipped=True)
        with self._reconcile_lock:
            try:
                desired = self._discover()
            except DiscoveryError as exc:
                return ReconcileResult(error=str(exc))

            result = ReconcileResult()
            to_start: list[CameraDescriptor] = []
            to_restart: list[CameraDescriptor] = []
            with self.registry.lock:
                if self.supervisor.is_shutting_down:
                    return ReconcileResult(skipped=True)
                current = self.registry.snapshot()
                result.stopped = sorted(set(current) - set(desired))
                for camera_id, camera in sorted(desired.items()):
                    worker = current.get(camera_id)
                    if worker is None or worker.state is WorkerState.STOPPED:
                        to_start.append(camera)
                    elif worker.state is WorkerState.STOPPING:
                        continue
                    elif worker.source_uri_snapshot != camera.source_uri:
                        to_restart.append(camera)
                    elif worker.parked:
                        result.retried.append(camera_id)

                occupied = len(current) - len(result.stopped) - sum(1 for camera in to_start if camera.id in current)
                to_start, result.deferred = self._apply_stream_cap(to_start, occupied)
                for camera in to_start:
                    self.registry.ensure(camera.id, name=camera.name)
            result.started = [camera.id for camera in to_start]
            result.restarted = [camera.id for camera in to_restart]

            with self._state_lock:
                self._discovery.deferred = list(result.deferred)

            tasks: list[tuple[str, Callable[[], object]]] = []
            tasks.extend((f"stop {camera_id}", partial(self.supervisor.stop, camera_id)) for camera_id in result.stopped)
            tasks.extend(
                (f"restart {camera.id}", partial(self.supervisor.restart, camera.id, camera.source_uri, camera.name))
                for camera in to_restart
            )
            tasks.extend((f"retry {camera_id}", partial(self.supervisor.retry_parked, camera_id)) for camera_id in result.retried)
            tasks.extend(
                (f"start {camera.id}", partial(self.supervisor.start, camera.id, camera.source_uri, camera.name))
                for camera in to_start
            )
            if result.changed:
                logger.info(
                    "reconciling cameras: start=%s stop=%s restart=%s retry=%s",
                    result.started,
                    result.stopped,
                    result.restarted,
                    result.retried,
                )
            self._run_concurrently(tasks)
            return result

    def stop_all(self, timeout: float | None = None) -> list[str]:
        """Stop every worker; returns the ids that had to be force-removed."""
        budget = self.stop_all_timeout if timeout is None else timeout
        self.supervisor.request_shutdown()
        camera_ids = self.registry.ids()
        if camera_ids:
            logger.info("stopping %d transcode worker(s)", len(camera_ids))

        threads = [
            threading.Thread(target=self.supervisor.stop, args=(camera_id,), name=f"stop-{camera_id}", daemon=True)
            for camera_id in camera_ids
        ]
        for thread in threads:
            thread.start()

        deadline = monotonic() + budget
        for thread in threads:
            thread.join(timeout=max(0.0, deadline - monotonic()))

        forced = self.registry.ids()
        for camera_id in forced:
            logger.warning("worker %s did not stop within %.1fs; forcing", camera_id, budget)
            self.supervisor.force_remove(camera_id)
        with self._state_lock:
            self._discovery.deferred = []
        return forced
