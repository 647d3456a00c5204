from __future__ import annotations

from typing import Any

from camfleet.util.security import sanitize_rtsp_url
from camfleet.util.time import isoformat_or_none

from .reconcile import ReconciliationLoop
from .registry import WorkerRegistry, WorkerSnapshot, WorkerState


class StatusReporter:
    def __init__(self, registry: WorkerRegistry, loop: ReconciliationLoop | None = None) -> None:
        self.registry = registry
        self.loop = loop

    @staticmethod
    def _worker_payload(worker: WorkerSnapshot) -> dict[str, Any]:
        return {
            "camera_id": worker.camera_id,
            "name": worker.name,
            "state": worker.state.value,
            "last_error": worker.last_error,
            "last_exit_code": worker.last_exit_code,
            "restart_count": worker.restart_count,
            "started_at": isoformat_or_none(worker.started_at),
            "source": sanitize_rtsp_url(worker.source_uri_snapshot) if worker.source_uri_snapshot else None,
            "parked": worker.parked,
            "pid": worker.pid,
        }

    def get_status(self) -> dict[str, Any]:
        workers = sorted(self.registry.snapshot().values(), key=lambda item: item.camera_id)
        payload: dict[str, Any] = {
            "active": sum(1 for worker in workers if worker.state is WorkerState.RUNNING),
            "total": len(workers),
            "failed": sum(1 for worker in workers if worker.state is WorkerState.FAILED),
            "parked": sum(1 for worker in workers if worker.parked),
            "workers": [self._worker_payload(worker) for worker in workers],
        }
        if self.loop is not None:
            discovery = self.loop.discovery_state()
            payload["discovery"] = {
                "last_success_at": discovery.last_success_at,
                "last_error": discovery.last_error,
                "last_error_at": discovery.last_error_at,
            }
            payload["suppressed"] = discovery.suppressed
            payload["deferred"] = discovery.deferred
        return payload
