"""Tests for registry payload helpers."""

import pytest

from dependent_trigger.errors import InvalidPayload
from dependent_trigger.payload import (
    MERGE_POLICY,
    extract_latest,
    is_published,
    latest_descriptor,
    merge_package_record,
    normalize_event,
)

from conftest import registry_payload


def test_extract_latest_reads_either_tag_spelling():
    package = {"name": "cows", "version": "2.0.0"}
    dashed = registry_payload(package)
    camel = {"name": "cows", "distTags": {"latest": "2.0.0"}, "versions": {"2.0.0": package}}

    assert extract_latest(dashed) == package
    assert extract_latest(camel) == package
    assert extract_latest({"name": "cows"}) == {}


def test_latest_descriptor_rejects_missing_or_invalid_versions():
    with pytest.raises(InvalidPayload):
        latest_descriptor({"name": "cows"})
    with pytest.raises(InvalidPayload):
        latest_descriptor(registry_payload({"name": "cows", "version": "two"}))

    pkg = latest_descriptor(registry_payload({"name": "cows", "version": "2.0.0"}))
    assert pkg.spec == "cows@2.0.0"


def test_normalize_event_accepts_wrapped_and_bare_payloads():
    payload = registry_payload({"name": "cows", "version": "2.0.0"})

    assert normalize_event({"data": payload, "promote": False}) == (payload, False)
    assert normalize_event({"data": payload}) == (payload, True)
    assert normalize_event({"data": payload, "promote": None}) == (payload, True)
    assert normalize_event(payload) == (payload, True)


@pytest.mark.parametrize("body", [None, [], "cows", {"promote": True}, {"data": {"version": "1.0.0"}}])
def test_normalize_event_rejects_payloads_without_name(body):
    with pytest.raises(InvalidPayload):
        normalize_event(body)


def test_is_published_marker():
    payload = registry_payload({"name": "cows", "version": "2.0.0"}, published=True)

    assert is_published(payload)
    assert not is_published({"name": "cows"})


def test_merge_keeps_payload_fields_and_layers_dist_tags():
    data = {"name": "cows", "dist-tags": {"latest": "2.0.1-0"}, "main": "lib/index.js"}
    record = {
        "name": "cows-old",
        "main": "index.js",
        "config": {"locale": "en"},
        "distTags": {"latest": "2.0.0", "beta": "2.1.0-beta.1"},
    }

    merged = merge_package_record(data, record)

    assert merged is data
    assert data["name"] == "cows"
    assert data["main"] == "lib/index.js"
    assert data["config"] == {"locale": "en"}
    assert data["dist-tags"] == {"latest": "2.0.1-0", "beta": "2.1.0-beta.1"}
    assert "distTags" not in data


def test_merge_with_custom_policy():
    data = {"name": "cows"}
    copy_everything = MERGE_POLICY[-1:]

    merge_package_record(data, {"name": "other", "main": "index.js"}, copy_everything)

    assert data == {"name": "other", "main": "index.js"}
