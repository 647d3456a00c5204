from __future__ import annotations

import datetime as dt
import threading
from dataclasses import dataclass, field
from enum import Enum

from camfleet.launcher.base import ProcessHandle


class WorkerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


@dataclass
class TranscodeWorker:
    """Mutable record of one camera's worker.

    Fields are only written while holding the registry lock. ``op_lock``
    serializes lifecycle operations (start, stop, restart) on this camera and
    is held across blocking launcher calls; the registry lock never is.
    """

    camera_id: str
    name: str
    state: WorkerState = WorkerState.STOPPED
    process_handle: ProcessHandle | None = None
    last_error: str | None = None
    last_exit_code: int | None = None
    restart_count: int = 0
    started_at: dt.datetime | None = None
    source_uri_snapshot: str | None = None
    parked: bool = False
    generation: int = 0
    op_lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    retry_cancel: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)


@dataclass(frozen=True)
class WorkerSnapshot:
    camera_id: str
    name: str
    state: WorkerState
    last_error: str | None
    last_exit_code: int | None
    restart_count: int
    started_at: dt.datetime | None
    source_uri_snapshot: str | None
    parked: bool
    pid: int | None

    @classmethod
    def of(cls, worker: TranscodeWorker) -> "WorkerSnapshot":
        handle = worker.process_handle
        return cls(
            camera_id=worker.camera_id,
            name=worker.name,
            state=worker.state,
            last_error=worker.last_error,
            last_exit_code=worker.last_exit_code,
            restart_count=worker.restart_count,
            started_at=worker.started_at,
            source_uri_snapshot=worker.source_uri_snapshot,
            parked=worker.parked,
            pid=handle.pid if handle is not None else None,
        )


class RegistryCorruptionError(RuntimeError):
    pass


class WorkerRegistry:
    def __init__(self) -> None:
        self._workers: dict[str, TranscodeWorker] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def ensure(self, camera_id: str, name: str | None = None) -> tuple[TranscodeWorker, bool]:
        with self._lock:
            worker = self._workers.get(camera_id)
            if worker is not None:
                if name:
                    worker.name = name
                return worker, False
            worker = TranscodeWorker(camera_id=camera_id, name=name or camera_id)
            self._workers[camera_id] = worker
            return worker, True

    def get(self, camera_id: str) -> TranscodeWorker | None:
        with self._lock:
            return self._workers.get(camera_id)

    def remove(self, camera_id: str, worker: TranscodeWorker | None = None) -> bool:
        """Delete the entry; with ``worker`` given, only if it is still that record."""
        with self._lock:
            current = self._workers.get(camera_id)
            if current is None:
                return False
            if worker is not None and current is not worker:
                return False
            del self._workers[camera_id]
            return True

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._workers)

    def items(self) -> list[tuple[str, TranscodeWorker]]:
        with self._lock:
            return sorted(self._workers.items())

    def snapshot(self) -> dict[str, WorkerSnapshot]:
        with self._lock:
            result: dict[str, WorkerSnapshot] = {}
            for camera_id, worker in self._workers.items():
                if worker.camera_id != camera_id:
                    raise RegistryCorruptionError(f"registry key {camera_id} holds worker {worker.camera_id}")
                result[camera_id] = WorkerSnapshot.of(worker)
            return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._workers)

    def __contains__(self, camera_id: object) -> bool:
        with self._lock:
            return camera_id in self._workers
