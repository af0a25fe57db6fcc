"""
Interfaces for record stores and network collaborators.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, Optional, Protocol

from .models import (
    BuildHead,
    DependentOfRecord,
    DependentRecord,
    ReleaseLineEntry,
    VersionRecord,
)


class PackageStore(Protocol):
    """Packages managed by the internal registry."""

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        ...


class DependentStore(Protocol):
    """First-level dependents per package."""

    def get(self, name: str) -> Optional[DependentRecord]:
        ...

    def create(self, record: DependentRecord) -> None:
        ...

    def update(self, name: str, add: Iterable[str]) -> None:
        ...


class DependentOfStore(Protocol):
    """Single tracked parent per package."""

    def get(self, name: str) -> Optional[DependentOfRecord]:
        ...

    def create(self, record: DependentOfRecord) -> None:
        ...


class ReleaseLineStore(Protocol):
    """Versioned release line chain per root package."""

    def get(self, pkg: str, version: Optional[str] = None) -> Optional[ReleaseLineEntry]:
        ...

    def create(self, entry: ReleaseLineEntry) -> None:
        ...

    def add_dependent(
        self, pkg: str, version: str, dependent: str, dependent_version: str
    ) -> None:
        ...


class VersionStore(Protocol):
    """Stored publishes and their tarball attachments."""

    def get(self, version_id: str) -> Optional[VersionRecord]:
        ...

    def get_attachment(self, record: VersionRecord) -> Optional[Dict[str, Any]]:
        ...


class BuildHeadStore(Protocol):
    """Latest build versions per environment."""

    def get(self, env: str, name: str) -> Optional[BuildHead]:
        ...


class BuildService(Protocol):
    """Submit builds and stream back their status events."""

    def build(self, payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        ...


class RegistryGateway(Protocol):
    """Read package documents from the registry and publish to it."""

    def fetch(self, name: str) -> Optional[Dict[str, Any]]:
        ...

    def publish(self, name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...
