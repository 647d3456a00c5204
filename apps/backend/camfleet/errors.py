from __future__ import annotations


class CamfleetError(Exception):
    """Base class for errors raised by camfleet components."""


class SettingsError(CamfleetError):
    pass


class DiscoveryError(CamfleetError):
    """The discovery provider could not produce a camera inventory."""


class LaunchError(CamfleetError):
    """A transcoding process could not be started."""


class TerminateError(CamfleetError):
    """A transcoding process did not acknowledge termination."""
