from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class CameraDescriptor:
    id: str
    source_uri: str
    enabled: bool = True
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class CameraDiscoveryProvider(ABC):
    @abstractmethod
    def list_cameras(self) -> Sequence[CameraDescriptor]:
        """Return the current inventory or raise DiscoveryError."""
        raise NotImplementedError
