"""
Runtime settings for the trigger engine.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote, urlsplit, urlunsplit


ENVIRONMENTS = ("dev", "test", "prod")
DEFAULT_CONCURRENCY = 20

DEFAULT_URLS = {
    "build": "http://localhost:1337",
    "publish": "http://localhost:8080",
    "registry": "https://registry.npmjs.org",
}


def split_auth(url: str) -> Tuple[str, Optional[Tuple[str, str]]]:
    """Strip `user:password@` from a URL and return it as a basic auth pair."""
    parts = urlsplit(url)
    if parts.username is None:
        return url, None
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    clean = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    return clean, (unquote(parts.username), unquote(parts.password or ""))


@dataclass(frozen=True)
class Settings:
    """Service endpoints, fan-out width and storage location."""

    build_url: str = DEFAULT_URLS["build"]
    publish_url: str = DEFAULT_URLS["publish"]
    registry_url: str = DEFAULT_URLS["registry"]
    concurrency: int = DEFAULT_CONCURRENCY
    store_dir: Optional[Path] = None
    retries: int = 3
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        values = dict(data)
        if values.get("store_dir") is not None:
            values["store_dir"] = Path(values["store_dir"])
        return cls(**values)

    @classmethod
    def from_file(cls, path: Path) -> "Settings":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def override(self, **values: Any) -> "Settings":
        """Return a copy with every non-None value applied."""
        changes = {key: value for key, value in values.items() if value is not None}
        if changes.get("store_dir") is not None:
            changes["store_dir"] = Path(changes["store_dir"])
        return replace(self, **changes)
