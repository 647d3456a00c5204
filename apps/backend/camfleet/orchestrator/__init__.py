"""Supervision and reconciliation of per-camera transcoding workers."""

from .backoff import BackoffPolicy
from .reconcile import ReconcileResult, ReconciliationLoop
from .registry import TranscodeWorker, WorkerRegistry, WorkerSnapshot, WorkerState
from .runtime import TranscodingOrchestrator
from .scheduler import PeriodicTask
from .status import StatusReporter
from .supervisor import TranscodeWorkerSupervisor

__all__ = [
    "BackoffPolicy",
    "PeriodicTask",
    "ReconcileResult",
    "ReconciliationLoop",
    "StatusReporter",
    "TranscodeWorker",
    "TranscodeWorkerSupervisor",
    "TranscodingOrchestrator",
    "WorkerRegistry",
    "WorkerSnapshot",
    "WorkerState",
]
