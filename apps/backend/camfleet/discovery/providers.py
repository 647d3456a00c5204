from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from camfleet.config.schema import CameraConfig
from camfleet.errors import DiscoveryError
from camfleet.util.logging import get_logger

from .base import CameraDescriptor, CameraDiscoveryProvider

logger = get_logger(__name__)


def descriptor_from_config(camera: CameraConfig) -> CameraDescriptor:
    return CameraDescriptor(id=camera.id, source_uri=camera.source, enabled=camera.enabled, name=camera.name)


class _InventoryFile(BaseModel):
    cameras: list[CameraConfig] = Field(default_factory=list)


class StaticDiscoveryProvider(CameraDiscoveryProvider):
    """Inventory taken from the settings file; never changes at runtime."""

    def __init__(self, cameras: Iterable[CameraConfig | CameraDescriptor]) -> None:
        descriptors: list[CameraDescriptor] = []
        for camera in cameras:
            if isinstance(camera, CameraConfig):
                descriptors.append(descriptor_from_config(camera))
            else:
                descriptors.append(camera)
        self._cameras = tuple(descriptors)

    def list_cameras(self) -> Sequence[CameraDescriptor]:
        return list(self._cameras)


class JsonFileDiscoveryProvider(CameraDiscoveryProvider):
    """Re-reads an inventory file on every query.

    The file holds either ``{"cameras": [...]}`` or a bare list of camera
    objects with ``id``, ``source``, optional ``name`` and ``enabled``.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def list_cameras(self) -> Sequence[CameraDescriptor]:
        try:
            raw: Any = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise DiscoveryError(f"inventory file not found: {self.path}") from exc
        except OSError as exc:
            raise DiscoveryError(f"inventory file unreadable: {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise DiscoveryError(f"inventory file is not valid JSON: {self.path}: {exc}") from exc

        if isinstance(raw, list):
            raw = {"cameras": raw}
        try:
            inventory = _InventoryFile.model_validate(raw)
        except ValidationError as exc:
            raise DiscoveryError(f"inventory file is malformed: {self.path}: {exc.error_count()} error(s)") from exc
        return [descriptor_from_config(camera) for camera in inventory.cameras]


class CompositeDiscoveryProvider(CameraDiscoveryProvider):
    """Merges several providers into one inventory.

    A failure of any member fails the whole query so that a flaky provider
    cannot make its cameras look removed. When two providers report the same
    id, the first one wins.
    """

    def __init__(self, providers: Sequence[CameraDiscoveryProvider]) -> None:
        self.providers = list(providers)

    def list_cameras(self) -> Sequence[CameraDescriptor]:
        merged: dict[str, CameraDescriptor] = {}
        for provider in self.providers:
            name = type(provider).__name__
            try:
                cameras = provider.list_cameras()
            except DiscoveryError:
                raise
            except Exception as exc:
                raise DiscoveryError(f"{name} failed: {exc}") from exc
            for camera in cameras:
                if camera.id in merged:
                    logger.warning("duplicate camera id %s from %s ignored", camera.id, name)
                    continue
                merged[camera.id] = camera
        logger.debug("composite discovery found %d camera(s) across %d provider(s)", len(merged), len(self.providers))
        return list(merged.values())
