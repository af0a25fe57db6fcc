"""
Compute the next build or publish version of a dependent payload.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional

from . import versioning
from .models import BuildHead, BuildSpec, IncrementResult
from .payload import PUBLISHED_MARKER, extract_latest
from .strategy import NEXT, PREVIOUS, RELEASE


logger = logging.getLogger(__name__)


def respec(key: str) -> BuildSpec:
    """Turn a `name!env!version!locale` build id into a BuildSpec."""
    parts = key.split("!")
    parts += [None] * (4 - len(parts))
    name, env, version, locale = parts[:4]
    return BuildSpec(name=name, env=env, version=version, locale=locale)


def latest_head(head: BuildHead) -> str:
    """Latest build version of a head, including versions recorded by rollbacks.

    A rollback moves `head.version` backwards; the build ids it recorded still
    carry the versions that were already produced.
    """
    candidates = [respec(build_id).version for build_id in head.rollback_build_ids.values()]
    candidates.append(head.version)
    return versioning.max_version(candidates) or head.version


def _from_head(current: Optional[str], head: BuildHead) -> Optional[str]:
    head_version = latest_head(head)
    if not current or (
        versioning.lte(current, head_version)
        and versioning.major(current) == versioning.major(head_version)
    ):
        return versioning.inc(head_version, "prerelease")
    return versioning.inc(current, "prerelease")


def increment(
    strategy: str,
    payload: Dict[str, Any],
    head: BuildHead,
    release_version: Optional[str] = None,
    previous_release_version: Optional[str] = None,
    publish: bool = False,
) -> IncrementResult:
    """Bump the version of a payload according to the trigger strategy.

    The payload is never mutated; a bumped copy is returned. Only the tagged
    latest version is carried over, and the tarball attachment is renamed to
    the new version while its content is reused.

    Args:
        strategy: One of the strategies from `strategy.STRATEGIES`
        payload: Full registry payload of the dependent
        head: Build head of the dependent in the target environment
        release_version: Version recorded in the root's release line
        previous_release_version: Version recorded in an older release line entry
        publish: Whether the triggering event was a registry publish

    Returns:
        IncrementResult with the payload to send and `build` or `publish`
    """
    action = "publish" if publish else "build"
    payload = copy.deepcopy(payload)
    latest = copy.deepcopy(extract_latest(payload))
    name = latest.get("name") or payload.get("name")
    current = latest.get("version")
    prev_version = current or payload.get("version")
    prev_tar = f"{name}-{prev_version}.tgz"

    if strategy == RELEASE and release_version:
        version = release_version
    elif strategy == RELEASE:
        logger.info("No recorded release version for %s, incrementing from build head", name)
        version = _from_head(current, head)
    elif strategy == PREVIOUS:
        if not previous_release_version:
            raise ValueError(f"Strategy previous for {name} needs a previous release version")
        version = versioning.inc(previous_release_version, "prerelease")
    elif strategy == NEXT:
        version = versioning.inc(prev_version, "major")
    else:
        version = _from_head(current, head)

    logger.info(
        "Potentially incrementing %s: prev=%s release=%s previous_release=%s next=%s strategy=%s",
        name, prev_version, release_version, previous_release_version, version, strategy,
    )
    logger.debug("Previous versions for %s: %s", name, list((payload.get("versions") or {}).keys()))

    if not version:
        raise ValueError(f"Unable to compute the next version of {name} with strategy {strategy}")

    if version == current:
        return IncrementResult(payload=payload, action=action)

    latest["version"] = version
    latest["_id"] = f"{name}@{version}"
    payload["version"] = version
    payload["versions"] = {version: latest}
    payload.setdefault("dist-tags", {})["latest"] = version
    if isinstance(payload.get("distTags"), dict):
        payload["distTags"]["latest"] = version

    attachments = payload.get("_attachments") or {}
    if prev_tar not in attachments and attachments:
        prev_tar = next(iter(attachments))
    content = attachments.pop(prev_tar, None) or {}
    attachments[f"{name}-{version}.tgz"] = content
    payload["_attachments"] = attachments

    if publish:
        payload[PUBLISHED_MARKER] = True
    return IncrementResult(payload=payload, action=action)
