"""
Error taxonomy for change processing.
"""

from __future__ import annotations


class TriggerError(Exception):
    """Base class for trigger engine errors."""


class InvalidPayload(TriggerError, ValueError):
    """A change event is malformed and was rejected before any write."""


class NotManaged(TriggerError):
    """A package, version or release line is not tracked; the work item is skipped."""


class UpstreamUnavailable(TriggerError):
    """A registry, build service or store call failed."""


class ReleaseLineConflict(TriggerError):
    """A release line entry already exists for the given package and version."""

    def __init__(self, pkg: str, version: str) -> None:
        super().__init__(f"Release line {pkg}@{version} already exists")
        self.pkg = pkg
        self.version = version
