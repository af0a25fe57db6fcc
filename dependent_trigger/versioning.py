"""
Shared npm semantic-version helpers.
"""

from __future__ import annotations

import re
from functools import cmp_to_key
from typing import Iterable, List, Optional

import nodesemver


_COERCE_RE = re.compile(r"(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?")


def normalize_range(range_: Optional[str]) -> Optional[str]:
    """Alias the legacy `latest` range to `*`."""
    if range_ == "latest":
        return "*"
    return range_


def coerce(value: Optional[str]) -> Optional[str]:
    """Pull the first `major[.minor[.patch]]` out of a string, npm style."""
    if not value:
        return None
    match = _COERCE_RE.search(value)
    if match is None:
        return None
    major_, minor_, patch_ = match.groups()
    return f"{int(major_)}.{int(minor_ or 0)}.{int(patch_ or 0)}"


def is_valid(version: Optional[str]) -> bool:
    if not version:
        return False
    try:
        nodesemver.make_semver(version, False)
    except (ValueError, TypeError):
        return False
    return True


def major(version: str) -> int:
    return nodesemver.make_semver(version, False).major


def satisfies(version: Optional[str], range_: Optional[str]) -> bool:
    """Return whether a version is inside an npm range; missing input never satisfies."""
    range_ = normalize_range(range_)
    if not version or range_ is None:
        return False
    try:
        return bool(nodesemver.satisfies(version, range_, False))
    except (ValueError, TypeError):
        return False


def inc(version: str, release: str) -> Optional[str]:
    """Increment with npm semantics, e.g. `2.0.0` -> `2.0.1-0` for prerelease."""
    return nodesemver.inc(version, release, False)


def compare(left: str, right: str) -> int:
    return nodesemver.compare(left, right, False)


def lte(left: str, right: str) -> bool:
    return compare(left, right) <= 0


def sort_desc(versions: Iterable[str]) -> List[str]:
    """Sort valid versions newest first, dropping anything that does not parse."""
    valid = [version for version in versions if is_valid(version)]
    return sorted(valid, key=cmp_to_key(compare), reverse=True)


def max_version(versions: Iterable[str]) -> Optional[str]:
    ordered = sort_desc(versions)
    return ordered[0] if ordered else None
