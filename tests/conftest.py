"""Shared fixtures and fake collaborators for the trigger engine tests."""

import copy
import json
import threading
import time

import pytest

from dependent_trigger.dispatcher import BuildDispatcher
from dependent_trigger.models import BuildHead, VersionRecord
from dependent_trigger.stores import Stores


def registry_payload(package, published=False, attachments=None):
    """Mimic a registry payload whose latest tag points at `package`."""
    payload = {
        "name": package["name"],
        "dist-tags": {"latest": package["version"]},
        "versions": {package["version"]: copy.deepcopy(package)},
        "_attachments": attachments if attachments is not None else "",
    }
    if published:
        payload["__published"] = True
    return payload


def version_record(payload, attachments=None):
    latest = payload["dist-tags"]["latest"]
    return VersionRecord(
        version_id=f"{payload['name']}@{latest}",
        name=payload["name"],
        version=latest,
        value=json.dumps(payload),
        attachments=attachments or {},
    )


class FakeBuildService:
    """Collects build requests and replies with canned status events."""

    def __init__(self, events=None, delay=0.0):
        self.events = events if events is not None else [{"event": "queued"}]
        self.delay = delay
        self.calls = []
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def build(self, payload):
        with self._lock:
            self.calls.append(payload)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            for event in self.events:
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self):
        self.closed = True


class FakeRegistry:
    """In-memory registry documents plus a record of publishes."""

    def __init__(self, documents=None):
        self.documents = documents or {}
        self.published = []
        self.closed = False

    def fetch(self, name):
        return self.documents.get(name)

    def publish(self, name, data):
        self.published.append((name, data))
        return {"ok": True}

    def close(self):
        self.closed = True


@pytest.fixture
def packages():
    """The email/cows pair: cows depends on email with `*`."""
    email = {
        "name": "email",
        "version": "2.0.0",
        "main": "index.js",
        "dependencies": {"moment": "0.0.x", "slay": "*"},
        "config": {"locale": "en"},
    }
    cows = {
        "name": "cows",
        "version": "2.0.0",
        "distTags": {"latest": "2.0.0", "beta": "2.1.0-beta.1"},
        "main": "index.js",
        "dependencies": {"moment": "0.0.x", "email": "*"},
        "config": {"locale": "en"},
    }
    return {"email": email, "cows": cows}


@pytest.fixture
def stores(packages):
    stores = Stores.in_memory()
    stores.packages.create(packages["email"])
    stores.packages.create(packages["cows"])
    cows_payload = registry_payload(packages["cows"])
    stores.versions.create(version_record(cows_payload, {"cows-2.0.0.tgz": {"data": "tarball"}}))
    stores.build_heads.create(BuildHead(name="cows", env="dev", version="2.0.0"))
    return stores


@pytest.fixture
def build_service():
    return FakeBuildService()


@pytest.fixture
def registry():
    return FakeRegistry({
        "email": {"versions": {"2.0.0": {}}},
        "cows": {"versions": {"2.0.0": {}}},
    })


@pytest.fixture
def dispatcher(stores, build_service, registry):
    return BuildDispatcher(stores, build_service, registry, concurrency=4)
