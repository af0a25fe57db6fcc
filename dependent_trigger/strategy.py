"""
Decide whether a dependent is rebuilt after its root package changed.
"""

from __future__ import annotations

from typing import Iterable, Optional

from . import versioning
from .models import PackageDescriptor, ReleaseLineEntry, TriggerDecision


DEV_ENV = "dev"

LEGACY = "legacy"
CURRENT = "current"
RELEASE = "release"
PREVIOUS = "previous"
NEXT = "next"

STRATEGIES = (LEGACY, CURRENT, RELEASE, PREVIOUS, NEXT)


def latest_prior_version(published: Iterable[str], current: str) -> str:
    """Highest published version other than `current`, or `0.0.0`."""
    for version in versioning.sort_desc(published):
        if version != current:
            return version
    return "0.0.0"


def decide(
    env: str,
    root: PackageDescriptor,
    dependent: PackageDescriptor,
    release_line: Optional[ReleaseLineEntry],
    published_versions: Iterable[str] = (),
) -> TriggerDecision:
    """Pick the increment strategy for a dependent and whether to trigger it.

    Args:
        env: Environment the change happened in
        root: The package that changed
        dependent: A package depending on `root`
        release_line: Release line entry of `root` in effect for this change
        published_versions: Every version the registry has published for `root`

    Returns:
        TriggerDecision with the strategy, trigger flag and, when the root has
        lived on this major before, the prior version whose release line to use
    """
    # Promotions replay exactly what was recorded.
    if env != DEV_ENV and release_line is not None:
        return TriggerDecision(strategy=RELEASE, trigger=True)
    if release_line is None:
        return TriggerDecision(strategy=LEGACY, trigger=True)

    latest_prior = latest_prior_version(published_versions, root.version)

    root_range = versioning.normalize_range(dependent.dependencies.get(root.name))
    required = versioning.coerce(root_range) or release_line.version

    inclusive = versioning.satisfies(root.version, root_range)
    if not versioning.is_valid(required):
        return TriggerDecision(strategy=CURRENT, trigger=inclusive)

    root_major = versioning.major(root.version)
    previous_major = root_major < versioning.major(required)
    previous_published_major = root_major == versioning.major(latest_prior)

    trigger = previous_major or previous_published_major or inclusive
    strategy = PREVIOUS if previous_major else CURRENT
    fetch_release_version = latest_prior if previous_published_major else None

    return TriggerDecision(
        strategy=strategy,
        trigger=trigger,
        fetch_release_version=fetch_release_version,
    )
