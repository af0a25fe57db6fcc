"""
Registry payload helpers: latest extraction, event validation and merging.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from . import versioning
from .errors import InvalidPayload
from .models import PackageDescriptor


PUBLISHED_MARKER = "__published"


def extract_latest(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return the package.json of the version tagged `latest`, or `{}`."""
    tags = data.get("distTags") or data.get("dist-tags") or {}
    version = tags.get("latest")
    return (data.get("versions") or {}).get(version) or {}


def latest_descriptor(data: Dict[str, Any]) -> PackageDescriptor:
    """Extract the tagged-latest descriptor, rejecting payloads without one."""
    latest = extract_latest(data)
    descriptor = PackageDescriptor.from_dict(latest)
    if not descriptor.name or not descriptor.version:
        raise InvalidPayload(
            f"Payload for {data.get('name', '<unknown>')} has no resolvable latest name/version"
        )
    if not versioning.is_valid(descriptor.version):
        raise InvalidPayload(f"{descriptor.spec} is not a valid semantic version")
    return descriptor


def is_published(data: Dict[str, Any]) -> bool:
    return bool(data.get(PUBLISHED_MARKER))


def normalize_event(body: Any) -> Tuple[Dict[str, Any], bool]:
    """Accept a `{data, promote}` event or a bare registry payload.

    Bare payloads are always promoted.

    Returns:
        Tuple of (registry payload, promote flag)
    """
    if not isinstance(body, dict):
        raise InvalidPayload("Invalid payload received")

    if isinstance(body.get("data"), dict):
        data = body["data"]
        promote = body.get("promote", True)
        promote = True if promote is None else bool(promote)
    else:
        data, promote = body, True

    if "name" not in data:
        raise InvalidPayload("Invalid payload received")
    return data, promote


@dataclass(frozen=True)
class FieldRule:
    """One field-level rule for layering a package record onto a payload."""

    description: str
    matches: Callable[[str, Dict[str, Any]], bool]
    apply: Callable[[Dict[str, Any], str, Any], None]


def _keep_payload_value(data: Dict[str, Any], key: str, value: Any) -> None:
    return None


def _layer_dist_tags(data: Dict[str, Any], key: str, value: Any) -> None:
    tags = data.setdefault("dist-tags", {})
    for tag, version in (value or {}).items():
        if tag != "latest":
            tags[tag] = version


def _copy_value(data: Dict[str, Any], key: str, value: Any) -> None:
    data[key] = value


# First matching rule wins.
MERGE_POLICY: Tuple[FieldRule, ...] = (
    FieldRule(
        "payload-native fields win",
        lambda key, data: key in data,
        _keep_payload_value,
    ),
    FieldRule(
        "package dist-tags are layered in, except latest",
        lambda key, data: key == "distTags",
        _layer_dist_tags,
    ),
    FieldRule(
        "remaining package fields are copied",
        lambda key, data: True,
        _copy_value,
    ),
)


def merge_package_record(
    data: Dict[str, Any],
    record: Dict[str, Any],
    policy: Iterable[FieldRule] = MERGE_POLICY,
) -> Dict[str, Any]:
    """Layer a package record onto a payload in place and return the payload."""
    rules = tuple(policy)
    for key, value in record.items():
        rule: Optional[FieldRule] = next(
            (rule for rule in rules if rule.matches(key, data)), None
        )
        if rule is not None:
            rule.apply(data, key, value)
    return data
