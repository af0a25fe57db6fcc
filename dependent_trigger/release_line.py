"""
Release line bookkeeping on top of a release line store.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Set

from . import versioning
from .errors import ReleaseLineConflict
from .interfaces import ReleaseLineStore
from .models import ReleaseLineEntry


logger = logging.getLogger(__name__)


class ReleaseLineManager:
    """Read, append to and walk the release line of root packages."""

    def __init__(self, store: ReleaseLineStore) -> None:
        self.store = store

    def get(self, pkg: str, version: Optional[str] = None) -> Optional[ReleaseLineEntry]:
        """Return the exact entry when `version` is given, else the head."""
        return self.store.get(pkg, version)

    def create(
        self, pkg: str, version: str, previous_version: Optional[str] = None
    ) -> Optional[ReleaseLineEntry]:
        """Append an entry; an existing `(pkg, version)` entry makes this a no-op.

        Returns:
            The created entry, or None when it already existed
        """
        entry = ReleaseLineEntry(pkg=pkg, version=version, previous_version=previous_version)
        try:
            self.store.create(entry)
        except ReleaseLineConflict:
            logger.warning("Release line %s@%s already exists, skipping create", pkg, version)
            return None
        logger.info("Created release line %s@%s (previous: %s)", pkg, version, previous_version)
        return entry

    def add_dependent(
        self, pkg: str, version: str, dependent: str, dependent_version: str
    ) -> None:
        logger.debug("Adding dependent %s@%s to release line %s@%s",
                     dependent, dependent_version, pkg, version)
        self.store.add_dependent(pkg, version, dependent, dependent_version)

    def walk(
        self,
        start: ReleaseLineEntry,
        condition: Callable[[ReleaseLineEntry], bool],
    ) -> Optional[ReleaseLineEntry]:
        """Follow `previous_version` pointers while `condition` holds.

        Args:
            start: Entry to start from
            condition: Keep walking while this returns True

        Returns:
            The first entry for which `condition` is False, or None when the
            chain ends (missing or broken tail, or a cycle) first
        """
        seen: Set[str] = set()
        line: Optional[ReleaseLineEntry] = start
        while line is not None:
            if not condition(line):
                return line
            if line.key in seen:
                logger.warning("Release line cycle detected at %s", line.key)
                return None
            seen.add(line.key)
            if not line.previous_version:
                return None
            line = self.store.get(line.pkg, line.previous_version)
        return None

    def predecessor(self, pkg: str, version: str) -> Optional[str]:
        """Find the version a new entry for `version` should point back to.

        This is the highest recorded version strictly lower than `version`,
        which keeps every chain ordered newest to oldest.
        """
        head = self.get(pkg)
        if head is None:
            return None
        line = self.walk(head, lambda entry: versioning.compare(entry.version, version) >= 0)
        return line.version if line else None
