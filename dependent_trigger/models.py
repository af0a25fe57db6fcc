"""
Core data models for the dependent trigger engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


DEFAULT_HEAD_VERSION = "0.0.0"


@dataclass(frozen=True)
class PackageDescriptor:
    """The tagged-latest package.json snapshot of a registry payload."""

    name: str
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageDescriptor":
        return cls(
            name=data.get("name", ""),
            version=data.get("version", ""),
            dependencies=dict(data.get("dependencies") or {}),
        )

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class DependentRecord:
    """First-level dependents of a managed package."""

    name: str
    dependents: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DependentOfRecord:
    """The single tracked parent of a package."""

    pkg: str
    dependent_of: str


@dataclass
class ReleaseLineEntry:
    """One version of a root package and the dependent versions bundled with it."""

    pkg: str
    version: str
    previous_version: Optional[str] = None
    dependents: Dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.pkg}@{self.version}"


@dataclass(frozen=True)
class BuildHead:
    """Last produced build version of a package in an environment."""

    name: str
    env: str
    version: str = DEFAULT_HEAD_VERSION
    rollback_build_ids: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BuildSpec:
    """Decoded `name!env!version!locale` build identifier."""

    name: str
    env: str
    version: str
    locale: Optional[str] = None


@dataclass(frozen=True)
class VersionRecord:
    """A stored publish of `name@version` with its raw registry payload."""

    version_id: str
    name: str
    version: str
    value: str
    attachments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TriggerDecision:
    """Result of the trigger strategy engine for one dependent."""

    strategy: str
    trigger: bool
    fetch_release_version: Optional[str] = None


@dataclass(frozen=True)
class IncrementResult:
    """Payload to dispatch and the action to dispatch it with."""

    payload: Dict[str, Any]
    action: str


@dataclass(frozen=True)
class TriggerOutcome:
    """Terminal state of one dependent-trigger attempt."""

    name: str
    status: str
    stage: str
    strategy: Optional[str] = None
    action: Optional[str] = None
    version: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


@dataclass
class ChangeReport:
    """Everything that happened while processing one change event."""

    name: str
    version: str
    env: str
    publish: bool
    managed_dependencies: List[str] = field(default_factory=list)
    outcomes: List[TriggerOutcome] = field(default_factory=list)

    def by_status(self, status: str) -> List[TriggerOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == status]
