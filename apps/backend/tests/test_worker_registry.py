from __future__ import annotations

import pytest

from camfleet.orchestrator.registry import RegistryCorruptionError, WorkerRegistry, WorkerState


def test_ensure_creates_stopped_entry_once() -> None:
    registry = WorkerRegistry()
    worker, created = registry.ensure("cam-1", name="Front Door")
    again, created_again = registry.ensure("cam-1")

    assert created is True
    assert created_again is False
    assert again is worker
    assert worker.state is WorkerState.STOPPED
    assert worker.name == "Front Door"
    assert worker.restart_count == 0
    assert worker.process_handle is None
    assert len(registry) == 1
    assert "cam-1" in registry


def test_name_defaults_to_camera_id() -> None:
    registry = WorkerRegistry()
    worker, _ = registry.ensure("cam-2")
    assert worker.name == "cam-2"


def test_remove_only_deletes_matching_record() -> None:
    registry = WorkerRegistry()
    first, _ = registry.ensure("cam-1")
    registry.remove("cam-1")
    second, _ = registry.ensure("cam-1")

    assert registry.remove("cam-1", first) is False
    assert registry.get("cam-1") is second
    assert registry.remove("cam-1", second) is True
    assert registry.get("cam-1") is None
    assert registry.remove("cam-1") is False


def test_snapshot_is_detached_copy() -> None:
    registry = WorkerRegistry()
    worker, _ = registry.ensure("cam-1")
    snapshot = registry.snapshot()
    worker.state = WorkerState.RUNNING

    assert snapshot["cam-1"].state is WorkerState.STOPPED
    assert registry.snapshot()["cam-1"].state is WorkerState.RUNNING


def test_snapshot_detects_key_mismatch() -> None:
    registry = WorkerRegistry()
    worker, _ = registry.ensure("cam-1")
    worker.camera_id = "cam-other"

    with pytest.raises(RegistryCorruptionError):
        registry.snapshot()


def test_ids_are_sorted() -> None:
    registry = WorkerRegistry()
    for camera_id in ("cam-c", "cam-a", "cam-b"):
        registry.ensure(camera_id)
    assert registry.ids() == ["cam-a", "cam-b", "cam-c"]
