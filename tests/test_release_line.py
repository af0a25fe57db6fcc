"""Tests for release line bookkeeping."""

import logging

from dependent_trigger import versioning
from dependent_trigger.models import ReleaseLineEntry
from dependent_trigger.release_line import ReleaseLineManager
from dependent_trigger.stores import ReleaseLineTable


class CountingStore(ReleaseLineTable):
    """Release line table that counts lookups."""

    def __init__(self):
        super().__init__()
        self.lookups = 0

    def get(self, pkg, version=None):
        self.lookups += 1
        return super().get(pkg, version)


def _chain(manager, pkg, versions):
    previous = None
    for version in versions:
        manager.create(pkg, version, previous)
        previous = version


def test_get_returns_head_and_exact_entries():
    manager = ReleaseLineManager(ReleaseLineTable())
    _chain(manager, "cows", ["1.0.0", "1.1.0", "2.0.0"])

    head = manager.get("cows")
    assert head.version == "2.0.0"
    assert head.previous_version == "1.1.0"
    assert manager.get("cows", "1.0.0").previous_version is None
    assert manager.get("cows", "9.9.9") is None
    assert manager.get("unknown") is None


def test_duplicate_create_is_a_noop(caplog):
    manager = ReleaseLineManager(ReleaseLineTable())
    manager.create("cows", "1.0.0")
    manager.add_dependent("cows", "1.0.0", "email", "1.0.1-0")

    with caplog.at_level(logging.WARNING):
        assert manager.create("cows", "1.0.0", "0.9.0") is None

    entry = manager.get("cows", "1.0.0")
    assert entry.previous_version is None
    assert entry.dependents == {"email": "1.0.1-0"}
    assert "already exists" in caplog.text


def test_add_dependent_is_idempotent():
    manager = ReleaseLineManager(ReleaseLineTable())
    manager.create("cows", "1.0.0")

    manager.add_dependent("cows", "1.0.0", "email", "1.0.1-0")
    manager.add_dependent("cows", "1.0.0", "email", "1.0.1-0")

    assert manager.get("cows").dependents == {"email": "1.0.1-0"}


def test_walk_returns_first_entry_failing_condition():
    store = CountingStore()
    manager = ReleaseLineManager(store)
    _chain(manager, "cows", ["1.0.0", "1.2.0", "2.0.0", "3.0.0"])
    head = manager.get("cows")

    found = manager.walk(head, lambda entry: not versioning.satisfies(entry.version, "^1.0.0"))

    assert found.version == "1.2.0"
    assert manager.walk(head, lambda entry: False) is head


def test_walk_terminates_when_chain_is_exhausted():
    store = CountingStore()
    manager = ReleaseLineManager(store)
    _chain(manager, "cows", ["1.0.0", "2.0.0", "3.0.0"])
    head = manager.get("cows")
    store.lookups = 0

    assert manager.walk(head, lambda entry: True) is None
    assert store.lookups <= 2


def test_walk_treats_broken_tail_as_end():
    store = ReleaseLineTable()
    store.create(ReleaseLineEntry(pkg="cows", version="2.0.0", previous_version="1.0.0"))
    manager = ReleaseLineManager(store)

    assert manager.walk(manager.get("cows"), lambda entry: True) is None


def test_walk_detects_cycles():
    store = ReleaseLineTable()
    store.create(ReleaseLineEntry(pkg="cows", version="1.0.0", previous_version="2.0.0"))
    store.create(ReleaseLineEntry(pkg="cows", version="2.0.0", previous_version="1.0.0"))
    store.create(ReleaseLineEntry(pkg="self", version="1.0.0", previous_version="1.0.0"))
    manager = ReleaseLineManager(store)

    assert manager.walk(manager.get("cows"), lambda entry: True) is None
    assert manager.walk(manager.get("self"), lambda entry: True) is None


def _chain_from_head(manager, pkg):
    chain = []
    line = manager.get(pkg)
    while line is not None:
        chain.append(line.version)
        line = manager.get(pkg, line.previous_version) if line.previous_version else None
    return chain


def test_older_major_publish_stays_reachable_from_head():
    manager = ReleaseLineManager(ReleaseLineTable())
    for version in ["1.0.0", "2.0.0", "3.0.0", "2.1.0", "1.5.0"]:
        manager.create("cows", version, manager.predecessor("cows", version))

    assert manager.get("cows").version == "3.0.0"
    assert manager.get("cows", "3.0.0").previous_version == "2.1.0"
    assert manager.get("cows", "2.1.0").previous_version == "2.0.0"

    chain = _chain_from_head(manager, "cows")
    assert chain == ["3.0.0", "2.1.0", "2.0.0", "1.5.0", "1.0.0"]
    assert chain == versioning.sort_desc(chain)


def test_splice_ignores_stale_previous_version():
    store = ReleaseLineTable()
    store.create(ReleaseLineEntry(pkg="cows", version="2.0.0"))
    store.create(ReleaseLineEntry(pkg="cows", version="3.0.0", previous_version="2.0.0"))

    store.create(ReleaseLineEntry(pkg="cows", version="2.1.0", previous_version=None))

    assert store.get("cows", "2.1.0").previous_version == "2.0.0"
    assert store.get("cows", "3.0.0").previous_version == "2.1.0"


def test_splice_conflict_leaves_chain_untouched():
    manager = ReleaseLineManager(ReleaseLineTable())
    _chain(manager, "cows", ["1.0.0", "2.0.0", "3.0.0"])

    assert manager.create("cows", "2.0.0", "1.0.0") is None

    assert _chain_from_head(manager, "cows") == ["3.0.0", "2.0.0", "1.0.0"]
