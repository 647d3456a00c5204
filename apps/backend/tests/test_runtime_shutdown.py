from __future__ import annotations

import threading
import time

from fake_launcher import FakeDiscovery, FakeLauncher, camera, wait_for

from camfleet.config.schema import ScheduleConfig, TimeoutConfig
from camfleet.orchestrator.backoff import BackoffPolicy
from camfleet.orchestrator.runtime import TranscodingOrchestrator


def _orchestrator(discovery: FakeDiscovery, launcher: FakeLauncher, **kwargs) -> TranscodingOrchestrator:
    return TranscodingOrchestrator(
        discovery,
        launcher,
        backoff=kwargs.pop("backoff", BackoffPolicy(min_delay_seconds=0.01, max_delay_seconds=0.05, max_restarts=3)),
        schedule=kwargs.pop("schedule", ScheduleConfig()),
        timeouts=TimeoutConfig(stop_timeout_seconds=0.2, stop_all_timeout_seconds=1.0, liveness_interval_seconds=0.02),
    )


def _threads(prefix: str) -> list[str]:
    return [thread.name for thread in threading.enumerate() if thread.name.startswith(prefix)]


def test_shutdown_interrupts_long_backoff_waits() -> None:
    launcher = FakeLauncher()
    launcher.fail_ids.add("cam-1")
    orchestrator = _orchestrator(
        FakeDiscovery([camera("cam-1")]),
        launcher,
        backoff=BackoffPolicy(min_delay_seconds=60.0, max_delay_seconds=60.0, max_restarts=5),
    )
    orchestrator.start_background()
    assert _threads("retry-cam-1")

    started = time.perf_counter()
    forced = orchestrator.shutdown()

    assert forced == []
    assert time.perf_counter() - started < 1.0
    assert wait_for(lambda: not _threads("retry-cam-1"), timeout=1.0)
    assert launcher.launch_count("cam-1") == 1


def test_shutdown_stops_both_periodic_tasks() -> None:
    launcher = FakeLauncher()
    discovery = FakeDiscovery([camera("cam-1")])
    orchestrator = _orchestrator(
        discovery,
        launcher,
        schedule=ScheduleConfig(status_interval_seconds=0.02, discovery_interval_seconds=0.03),
    )

    orchestrator.start_background()
    assert wait_for(lambda: discovery.calls >= 3)
    orchestrator.shutdown()
    calls = discovery.calls
    time.sleep(0.1)

    assert discovery.calls == calls
    assert not _threads("status-tick")
    assert not _threads("discovery-tick")
    assert launcher.live_handles() == []


def test_discovery_tick_picks_up_new_cameras() -> None:
    launcher = FakeLauncher()
    discovery = FakeDiscovery([camera("cam-1")])
    orchestrator = _orchestrator(
        discovery,
        launcher,
        schedule=ScheduleConfig(status_interval_seconds=5.0, discovery_interval_seconds=0.03),
    )
    orchestrator.start_background()

    discovery.set(camera("cam-1"), camera("cam-2"))

    assert wait_for(lambda: orchestrator.get_status()["active"] == 2)
    assert launcher.launch_count("cam-1") == 1
    orchestrator.shutdown()


def test_status_tick_keeps_running_while_discovery_is_slow() -> None:
    launcher = FakeLauncher()
    release = threading.Event()
    status_calls: list[int] = []

    class _SlowDiscovery(FakeDiscovery):
        def list_cameras(self):
            if self.calls:
                release.wait(2.0)
            return super().list_cameras()

    orchestrator = _orchestrator(
        _SlowDiscovery([camera("cam-1")]),
        launcher,
        schedule=ScheduleConfig(status_interval_seconds=0.02, discovery_interval_seconds=0.02),
    )
    original_tick = orchestrator._status_tick

    def counting_tick() -> None:
        status_calls.append(1)
        original_tick()

    orchestrator._status_task.callback = counting_tick
    orchestrator.start_background()

    assert wait_for(lambda: len(status_calls) >= 5)
    release.set()
    orchestrator.shutdown()


def test_shutdown_twice_is_harmless() -> None:
    launcher = FakeLauncher()
    orchestrator = _orchestrator(FakeDiscovery([camera("cam-1")]), launcher)
    orchestrator.start_background()

    assert orchestrator.shutdown() == []
    assert orchestrator.shutdown() == []
    assert orchestrator.get_status()["total"] == 0
