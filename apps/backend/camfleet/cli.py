from __future__ import annotations

import argparse
import json
import signal
import sys
import threading

from camfleet.config.migrate import SettingsStore
from camfleet.main import OrchestratorState, build_discovery_provider
from camfleet.util.security import sanitize_rtsp_url

_KNOWN_COMMANDS = {"run", "discover"}


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Path to settings JSON file")
    parser.add_argument("--data-dir", default=None, help="Path for runtime data (logs/streams)")


def _build_parser(prog: str) -> argparse.ArgumentParser:
    """Parser used when no explicit command is given; behaves like `run`."""
    parser = argparse.ArgumentParser(prog=prog, description="camfleet camera transcoding orchestrator")
    _add_common_arguments(parser)
    parser.add_argument("--log-level", default=None, help="Override settings log level")
    return parser


def _build_command_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="camfleet camera transcoding orchestrator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the orchestrator until interrupted")
    _add_common_arguments(run)
    run.add_argument("--log-level", default=None, help="Override settings log level")

    discover = subparsers.add_parser("discover", help="Query discovery once and print the cameras")
    _add_common_arguments(discover)

    return parser


def _run(parsed: argparse.Namespace, stop_event: threading.Event | None = None) -> int:
    state = OrchestratorState.create(
        config_path=parsed.config,
        data_dir=parsed.data_dir,
        log_level=parsed.log_level,
    )
    stop_event = stop_event or threading.Event()
    previous_handlers: dict[int, object] = {}

    def _request_exit(signum: int, _frame: object) -> None:
        if signum in {signal.SIGINT, signal.SIGTERM}:
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous_handlers[sig] = signal.getsignal(sig)
            signal.signal(sig, _request_exit)
        except (AttributeError, ValueError):
            continue

    try:
        state.start()
        print(f"camfleet running (data dir {state.data_dir}); press Ctrl+C to stop")
        while not stop_event.wait(0.5):
            pass
    except KeyboardInterrupt:
        stop_event.set()
    finally:
        state.shutdown()
        for sig, handler in previous_handlers.items():
            try:
                signal.signal(sig, handler)
            except (AttributeError, ValueError, TypeError):
                continue
    return 0


def _discover(parsed: argparse.Namespace) -> int:
    store = SettingsStore(config_path=parsed.config, cli_data_dir=parsed.data_dir)
    provider = build_discovery_provider(store)
    cameras = provider.list_cameras()
    payload = [
        {
            "id": camera.id,
            "name": camera.display_name,
            "source": sanitize_rtsp_url(camera.source_uri),
            "enabled": camera.enabled,
        }
        for camera in cameras
    ]
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def _dispatch_command(parsed: argparse.Namespace) -> int:
    if parsed.command == "run":
        return _run(parsed)
    if parsed.command == "discover":
        return _discover(parsed)
    raise ValueError(f"Unknown command: {parsed.command}")


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        if args and args[0] in _KNOWN_COMMANDS:
            parser = _build_command_parser("camfleet")
            parsed = parser.parse_args(args)
            return _dispatch_command(parsed)
        parser = _build_parser("camfleet")
        parsed = parser.parse_args(args)
        return _run(parsed)
    except KeyboardInterrupt:
        return 0
    except Exception as exc:
        print(f"[error] {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
