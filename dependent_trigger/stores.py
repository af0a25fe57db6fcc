"""
Keyed record stores backing the dependency graph and release lines.

Every table keeps JSON-compatible records in memory behind a lock and can
persist them to a single JSON file, so the same classes serve tests and the
command line. Read-modify-write operations (appending dependents, adding a
release line dependent) run entirely under the table lock.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import versioning
from .errors import ReleaseLineConflict
from .models import (
    BuildHead,
    DependentOfRecord,
    DependentRecord,
    ReleaseLineEntry,
    VersionRecord,
)


logger = logging.getLogger(__name__)


class RecordTable:
    """Thread-safe keyed JSON records, optionally persisted to a file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else None
        self._lock = threading.RLock()
        self._records: Dict[str, Dict[str, Any]] = {}
        if self.path is not None and self.path.exists():
            with open(self.path, encoding="utf-8") as f:
                self._records = json.load(f)
            logger.debug("Loaded %d records from %s", len(self._records), self.path)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(key)
            return copy.deepcopy(record) if record is not None else None

    def put(self, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records[key] = copy.deepcopy(record)
            self._flush()

    def insert(self, key: str, record: Dict[str, Any]) -> bool:
        """Store a record only if the key is free; return whether it was stored."""
        with self._lock:
            if key in self._records:
                return False
            self._records[key] = copy.deepcopy(record)
            self._flush()
            return True

    def modify(
        self,
        key: str,
        mutate: Callable[[Dict[str, Any]], None],
        default: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Apply `mutate` to a record in place; create it from `default` when absent."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                if default is None:
                    return None
                record = default()
                self._records[key] = record
            mutate(record)
            self._flush()
            return copy.deepcopy(record)

    def remove(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)
            self._flush()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._records, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)


class PackageTable(RecordTable):
    """Package records, keyed by name."""

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        return super().get(name)

    def create(self, record: Dict[str, Any]) -> None:
        self.put(record["name"], record)


class DependentTable(RecordTable):
    """Dependent records, keyed by the depended-upon package name."""

    def get(self, name: str) -> Optional[DependentRecord]:
        record = super().get(name)
        if record is None:
            return None
        return DependentRecord(name=record["name"], dependents=list(record["dependents"]))

    def create(self, record: DependentRecord) -> None:
        # A concurrent create for the same key turns into a union.
        self.update(record.name, record.dependents)

    def update(self, name: str, add: Iterable[str]) -> None:
        additions = list(add)

        def union(record: Dict[str, Any]) -> None:
            for dependent in additions:
                if dependent not in record["dependents"]:
                    record["dependents"].append(dependent)

        self.modify(name, union, default=lambda: {"name": name, "dependents": []})


class DependentOfTable(RecordTable):
    """DependentOf records, keyed by the dependent package name."""

    def get(self, name: str) -> Optional[DependentOfRecord]:
        record = super().get(name)
        if record is None:
            return None
        return DependentOfRecord(pkg=record["pkg"], dependent_of=record["dependent_of"])

    def create(self, record: DependentOfRecord) -> None:
        self.put(record.pkg, asdict(record))


class ReleaseLineTable:
    """Release line entries keyed by `pkg@version` plus a head pointer per package.

    The head of a package is its highest version by semver precedence, and
    the chain from the head runs through every entry in descending order.
    """

    def __init__(
        self, entries_path: Optional[Path] = None, heads_path: Optional[Path] = None
    ) -> None:
        self._lock = threading.RLock()
        self.entries = RecordTable(entries_path)
        self.heads = RecordTable(heads_path)

    def get(self, pkg: str, version: Optional[str] = None) -> Optional[ReleaseLineEntry]:
        if version is None:
            head = self.heads.get(pkg)
            if head is None:
                return None
            version = head["version"]
        record = self.entries.get(f"{pkg}@{version}")
        if record is None:
            return None
        return ReleaseLineEntry(**record)

    def create(self, entry: ReleaseLineEntry) -> None:
        """Insert an entry, keeping every entry reachable from the head.

        An entry above the head becomes the new head. An entry below it is
        spliced in: it takes over the `previous_version` of the lowest entry
        above it, which then points at the new entry.
        """
        with self._lock:
            head = self.heads.get(entry.pkg)
            successor = None
            if head is not None and versioning.compare(entry.version, head["version"]) < 0:
                successor = self._successor(entry.pkg, head["version"], entry.version)

            record = asdict(entry)
            if successor is not None:
                record["previous_version"] = successor["previous_version"]
            if not self.entries.insert(entry.key, record):
                raise ReleaseLineConflict(entry.pkg, entry.version)

            if successor is not None:
                def relink(line: Dict[str, Any]) -> None:
                    line["previous_version"] = entry.version

                self.entries.modify(f"{entry.pkg}@{successor['version']}", relink)
                logger.debug("Spliced %s after %s@%s", entry.key, entry.pkg, successor["version"])
            elif head is None or versioning.compare(entry.version, head["version"]) > 0:
                self.heads.put(entry.pkg, {"version": entry.version})

    def _successor(self, pkg: str, head_version: str, version: str) -> Optional[Dict[str, Any]]:
        """Lowest entry on the chain from the head that is above `version`."""
        seen = set()
        line = self.entries.get(f"{pkg}@{head_version}")
        while line is not None and line["version"] not in seen:
            seen.add(line["version"])
            previous = line["previous_version"]
            if not previous or versioning.compare(previous, version) <= 0:
                return line
            below = self.entries.get(f"{pkg}@{previous}")
            if below is None:
                return line
            line = below
        return None

    def add_dependent(
        self, pkg: str, version: str, dependent: str, dependent_version: str
    ) -> None:
        def assign(record: Dict[str, Any]) -> None:
            record["dependents"][dependent] = dependent_version

        if self.entries.modify(f"{pkg}@{version}", assign) is None:
            logger.warning("No release line %s@%s to add %s to", pkg, version, dependent)


class VersionTable(RecordTable):
    """Stored publishes keyed by `name@version`."""

    def get(self, version_id: str) -> Optional[VersionRecord]:
        record = super().get(version_id)
        if record is None:
            return None
        return VersionRecord(**record)

    def create(self, record: VersionRecord) -> None:
        self.put(record.version_id, asdict(record))

    def get_attachment(self, record: VersionRecord) -> Optional[Dict[str, Any]]:
        if not record.value:
            return None
        return {"value": record.value, "attachments": copy.deepcopy(record.attachments)}


class BuildHeadTable(RecordTable):
    """Build heads keyed by `env!name`."""

    def get(self, env: str, name: str) -> Optional[BuildHead]:
        record = super().get(f"{env}!{name}")
        if record is None:
            return None
        return BuildHead(**record)

    def create(self, head: BuildHead) -> None:
        self.put(f"{head.env}!{head.name}", asdict(head))


@dataclass
class Stores:
    """All record stores the engine reads and writes."""

    packages: PackageTable
    dependents: DependentTable
    dependent_of: DependentOfTable
    release_lines: ReleaseLineTable
    versions: VersionTable
    build_heads: BuildHeadTable

    @classmethod
    def in_memory(cls) -> "Stores":
        return cls(
            packages=PackageTable(),
            dependents=DependentTable(),
            dependent_of=DependentOfTable(),
            release_lines=ReleaseLineTable(),
            versions=VersionTable(),
            build_heads=BuildHeadTable(),
        )

    @classmethod
    def from_directory(cls, directory: Path) -> "Stores":
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        return cls(
            packages=PackageTable(directory / "packages.json"),
            dependents=DependentTable(directory / "dependents.json"),
            dependent_of=DependentOfTable(directory / "dependent_of.json"),
            release_lines=ReleaseLineTable(
                directory / "release_lines.json", directory / "release_line_heads.json"
            ),
            versions=VersionTable(directory / "versions.json"),
            build_heads=BuildHeadTable(directory / "build_heads.json"),
        )
