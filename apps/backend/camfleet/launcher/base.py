from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WorkerSpec:
    camera_id: str
    source_uri: str


class ProcessHandle(ABC):
    @property
    @abstractmethod
    def pid(self) -> int | None:
        raise NotImplementedError

    @abstractmethod
    def poll(self) -> int | None:
        """Exit code if the process has finished, otherwise None."""
        raise NotImplementedError

    @abstractmethod
    def wait(self, timeout: float) -> int | None:
        """Block up to ``timeout`` seconds; exit code or None if still alive."""
        raise NotImplementedError

    @property
    def last_output(self) -> str | None:
        return None


class ProcessLauncher(ABC):
    @abstractmethod
    def launch(self, spec: WorkerSpec) -> ProcessHandle:
        """Start a transcoding process or raise LaunchError."""
        raise NotImplementedError

    @abstractmethod
    def terminate(self, handle: ProcessHandle, timeout: float) -> bool:
        """Ask the process to stop; True once it has exited within ``timeout``."""
        raise NotImplementedError

    @abstractmethod
    def kill(self, handle: ProcessHandle) -> None:
        raise NotImplementedError
