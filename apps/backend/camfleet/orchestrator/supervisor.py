from __future__ import annotations

import threading

from camfleet.errors import LaunchError
from camfleet.launcher.base import ProcessHandle, ProcessLauncher, WorkerSpec
from camfleet.util.logging import get_logger
from camfleet.util.security import sanitize_rtsp_url
from camfleet.util.time import now_utc

from .backoff import BackoffPolicy
from .registry import TranscodeWorker, WorkerRegistry, WorkerState

logger = get_logger(__name__)


class TranscodeWorkerSupervisor:
    """Drives worker records through their lifecycle.

    Every operation follows the same pattern: decide and mark the transition
    under the registry lock, release it, make the blocking launcher call, then
    re-acquire the lock to record the outcome. A worker's ``generation`` is
    bumped on each start and stop so that monitor and retry threads belonging
    to an older process notice they are stale and exit quietly.
    """

    def __init__(
        self,
        registry: WorkerRegistry,
        launcher: ProcessLauncher,
        backoff: BackoffPolicy | None = None,
        *,
        stop_timeout: float = 5.0,
        liveness_interval: float = 1.0,
    ) -> None:
        self.registry = registry
        self.launcher = launcher
        self.backoff = backoff or BackoffPolicy()
        self.stop_timeout = stop_timeout
        self.liveness_interval = liveness_interval
        self._shutdown = threading.Event()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown.is_set()

    def request_shutdown(self) -> None:
        with self.registry.lock:
            self._shutdown.set()
            for _, worker in self.registry.items():
                worker.retry_cancel.set()

    def clear_shutdown(self) -> None:
        self._shutdown.clear()

    def start(self, camera_id: str, source_uri: str, name: str | None = None) -> WorkerState:
        with self.registry.lock:
            if self._shutdown.is_set():
                worker = self.registry.get(camera_id)
                if worker is None:
                    return WorkerState.STOPPED
                if worker.state is WorkerState.STOPPED:
                    self.registry.remove(camera_id, worker)
                return worker.state
            worker, _ = self.registry.ensure(camera_id, name=name)
        with worker.op_lock:
            return self._start_locked(worker, source_uri, reason="start")

    def stop(self, camera_id: str, remove: bool = True) -> bool:
        """Stop the worker; True when the process acknowledged termination."""
        worker = self.registry.get(camera_id)
        if worker is None:
            return True
        worker.retry_cancel.set()
        with worker.op_lock:
            return self._stop_locked(worker, remove=remove)

    def restart(self, camera_id: str, source_uri: str, name: str | None = None) -> WorkerState:
        worker = self.registry.get(camera_id)
        if worker is None:
            return self.start(camera_id, source_uri, name=name)
        worker.retry_cancel.set()
        with worker.op_lock:
            if self.registry.get(camera_id) is not worker:
                return WorkerState.STOPPED
            previous = worker.source_uri_snapshot
            self._stop_locked(worker, remove=False)
            logger.info(
                "restarting %s: source changed from %s to %s",
                camera_id,
                sanitize_rtsp_url(previous or ""),
                sanitize_rtsp_url(source_uri),
            )
            return self._start_locked(worker, source_uri, reason="restart")

    def retry_parked(self, camera_id: str) -> WorkerState | None:
        """One more attempt for a worker whose automatic retries ran out."""
        worker = self.registry.get(camera_id)
        if worker is None:
            return None
        with worker.op_lock:
            with self.registry.lock:
                if worker.state is not WorkerState.FAILED or not worker.parked:
                    return worker.state
                source_uri = worker.source_uri_snapshot or ""
                restart_count = worker.restart_count
            logger.info("discovery reconfirmed parked worker %s; attempting start (failures so far: %d)", camera_id, restart_count)
            return self._start_locked(worker, source_uri, reason="reconfirmed")

    def force_remove(self, camera_id: str) -> None:
        """Drop the entry without waiting on its lifecycle lock, killing any process."""
        with self.registry.lock:
            worker = self.registry.get(camera_id)
            if worker is None:
                return
            handle = worker.process_handle
            worker.process_handle = None
            worker.generation += 1
            worker.state = WorkerState.STOPPED
            worker.retry_cancel.set()
            self.registry.remove(camera_id, worker)
        if handle is not None:
            try:
                self.launcher.kill(handle)
            except Exception:
                logger.error("forced kill failed for %s", camera_id, exc_info=True)
        logger.warning("worker %s force-removed", camera_id)

    def _start_locked(self, worker: TranscodeWorker, source_uri: str, reason: str) -> WorkerState:
        with self.registry.lock:
            if self.registry.get(worker.camera_id) is not worker:
                return WorkerState.STOPPED
            if worker.state in (WorkerState.RUNNING, WorkerState.STARTING):
                return worker.state
            if self._shutdown.is_set():
                logger.debug("shutdown requested; not starting %s", worker.camera_id)
                if worker.state is WorkerState.STOPPED:
                    self.registry.remove(worker.camera_id, worker)
                return worker.state
            worker.retry_cancel.set()
            worker.retry_cancel = threading.Event()
            worker.state = WorkerState.STARTING
            worker.parked = False
            worker.source_uri_snapshot = source_uri
            worker.generation += 1
            generation = worker.generation

        try:
            handle = self.launcher.launch(WorkerSpec(camera_id=worker.camera_id, source_uri=source_uri))
        except LaunchError as exc:
            self._record_failure(worker, generation, f"launch_failed: {exc}", exit_code=None)
            return WorkerState.FAILED
        except Exception as exc:
            logger.exception("launcher raised unexpectedly for %s", worker.camera_id)
            self._record_failure(worker, generation, f"launch_failed: {type(exc).__name__}: {exc}", exit_code=None)
            return WorkerState.FAILED

        with self.registry.lock:
            current = worker.generation == generation and self.registry.get(worker.camera_id) is worker
            if current:
                worker.process_handle = handle
                worker.state = WorkerState.RUNNING
                worker.started_at = now_utc()
                worker.restart_count = 0
                worker.last_exit_code = None

        if not current:
            logger.warning("worker %s was removed while launching; releasing new process", worker.camera_id)
            self._release_handle(worker.camera_id, handle)
            return WorkerState.STOPPED

        logger.info("transcode worker running (%s): %s pid=%s", reason, worker.camera_id, handle.pid)
        monitor = threading.Thread(
            target=self._monitor,
            args=(worker, handle, generation),
            name=f"monitor-{worker.camera_id}",
            daemon=True,
        )
        monitor.start()
        return WorkerState.RUNNING

    def _stop_locked(self, worker: TranscodeWorker, remove: bool) -> bool:
        with self.registry.lock:
            if self.registry.get(worker.camera_id) is not worker:
                return True
            handle = worker.process_handle
            worker.state = WorkerState.STOPPING
            worker.generation += 1
            worker.parked = False
            worker.retry_cancel.set()

        acknowledged = self._release_handle(worker.camera_id, handle)

        with self.registry.lock:
            if worker.process_handle is handle:
                worker.process_handle = None
            worker.state = WorkerState.STOPPED
            if remove:
                self.registry.remove(worker.camera_id, worker)
        logger.info("transcode worker stopped: %s%s", worker.camera_id, "" if remove else " (kept for restart)")
        return acknowledged

    def _release_handle(self, camera_id: str, handle: ProcessHandle | None) -> bool:
        if handle is None:
            return True
        try:
            if self.launcher.terminate(handle, self.stop_timeout):
                return True
            logger.warning("worker %s did not stop within %.1fs; killing", camera_id, self.stop_timeout)
        except Exception:
            logger.warning("terminate failed for %s; killing", camera_id, exc_info=True)
        try:
            self.launcher.kill(handle)
        except Exception:
            logger.error("kill failed for %s", camera_id, exc_info=True)
        return False

    def _record_failure(self, worker: TranscodeWorker, generation: int, message: str, exit_code: int | None) -> bool:
        with self.registry.lock:
            if worker.generation != generation or self.registry.get(worker.camera_id) is not worker:
                return False
            if worker.state not in (WorkerState.STARTING, WorkerState.RUNNING):
                return False
            worker.state = WorkerState.FAILED
            worker.process_handle = None
            worker.last_error = message
            worker.last_exit_code = exit_code
            worker.restart_count += 1
            restart_count = worker.restart_count
            exhausted = self.backoff.exhausted(restart_count)
            worker.parked = exhausted
            cancel = worker.retry_cancel

        if exhausted:
            logger.error(
                "worker %s parked after %d consecutive failures; waiting for discovery to reconfirm it. last error: %s",
                worker.camera_id,
                restart_count,
                message,
            )
            return True
        if self._shutdown.is_set():
            logger.warning("worker %s failed during shutdown: %s", worker.camera_id, message)
            return True

        delay = self.backoff.delay_for(restart_count)
        logger.warning(
            "worker %s failed (%s); retry %d/%d in %.1fs",
            worker.camera_id,
            message,
            restart_count,
            self.backoff.max_restarts,
            delay,
        )
        retry = threading.Thread(
            target=self._retry_after,
            args=(worker, generation, delay, cancel),
            name=f"retry-{worker.camera_id}",
            daemon=True,
        )
        retry.start()
        return True

    def _is_pending_retry(self, worker: TranscodeWorker, generation: int) -> bool:
        return (
            self.registry.get(worker.camera_id) is worker
            and worker.generation == generation
            and worker.state is WorkerState.FAILED
            and not worker.parked
        )

    def _retry_after(self, worker: TranscodeWorker, generation: int, delay: float, cancel: threading.Event) -> None:
        if cancel.wait(delay) or self._shutdown.is_set():
            return
        with worker.op_lock:
            with self.registry.lock:
                if not self._is_pending_retry(worker, generation):
                    return
                source_uri = worker.source_uri_snapshot or ""
            self._start_locked(worker, source_uri, reason="retry")

    def _monitor(self, worker: TranscodeWorker, handle: ProcessHandle, generation: int) -> None:
        while True:
            try:
                code = handle.wait(self.liveness_interval)
            except Exception as exc:
                logger.warning("liveness check failed for %s", worker.camera_id, exc_info=True)
                if self._record_failure(worker, generation, f"liveness_check_failed: {exc}", exit_code=None):
                    self._release_handle(worker.camera_id, handle)
                return
            with self.registry.lock:
                current = worker.generation == generation and worker.process_handle is handle
            if not current:
                return
            if code is None:
                continue
            detail = handle.last_output
            message = f"exited_with_code:{code}" + (f": {detail}" if detail else "")
            self._record_failure(worker, generation, message, exit_code=code)
            return
