"""Camera discovery providers."""

from .base import CameraDescriptor, CameraDiscoveryProvider
from .providers import (
    CompositeDiscoveryProvider,
    JsonFileDiscoveryProvider,
    StaticDiscoveryProvider,
    descriptor_from_config,
)

__all__ = [
    "CameraDescriptor",
    "CameraDiscoveryProvider",
    "CompositeDiscoveryProvider",
    "JsonFileDiscoveryProvider",
    "StaticDiscoveryProvider",
    "descriptor_from_config",
]
