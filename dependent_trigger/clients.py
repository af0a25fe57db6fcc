"""
HTTP clients for the package registry and the build service.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import split_auth
from .errors import UpstreamUnavailable


logger = logging.getLogger(__name__)


def _retrying_session(retries: int, backoff_factor: float) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class RegistryClient:
    """Fetch package documents from the npm registry and publish to the internal one."""

    def __init__(
        self,
        registry_url: str,
        publish_url: str,
        session: Optional[requests.Session] = None,
        retries: int = 3,
        backoff_factor: float = 2.0,
    ) -> None:
        base_url, auth = split_auth(registry_url)
        self.registry_url = base_url.rstrip("/")
        self.publish_url = publish_url.rstrip("/")
        self.auth: Optional[Tuple[str, str]] = auth
        self.session = session or _retrying_session(retries, backoff_factor)

    def fetch(self, name: str) -> Optional[Dict[str, Any]]:
        url = f"{self.registry_url}/{quote(name, safe='')}"
        logger.debug("Fetching registry document for %s", name)
        try:
            with self.session.get(url, auth=self.auth) as response:
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Failed to fetch {name} from registry: {e}") from e

    def publish(self, name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.publish_url}/{quote(name, safe='@')}"
        logger.info("Publishing %s to %s", name, self.publish_url)
        try:
            with self.session.put(url, json=data) as response:
                response.raise_for_status()
                return response.json() if response.content else {}
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Failed to publish {name}: {e}") from e

    def close(self) -> None:
        self.session.close()


class BuildServiceClient:
    """Submit builds and stream their newline-delimited JSON status events."""

    def __init__(self, build_url: str, session: Optional[requests.Session] = None) -> None:
        self.build_url = build_url.rstrip("/")
        self.session = session or requests.Session()

    def build(self, payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        url = f"{self.build_url}/v2/build"
        try:
            with self.session.post(url, json=payload, stream=True) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    if not line:
                        continue
                    yield json.loads(line)
        except (requests.RequestException, ValueError) as e:
            raise UpstreamUnavailable(f"Build request to {url} failed: {e}") from e

    def close(self) -> None:
        self.session.close()
