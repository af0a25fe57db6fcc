#!/usr/bin/env python3
"""
Example script showing how to use the dependent-trigger engine.
"""

import json
from pathlib import Path

from dependent_trigger.config import Settings
from dependent_trigger.dispatcher import BuildDispatcher
from dependent_trigger.models import BuildHead, DependentRecord, VersionRecord
from dependent_trigger.reporting import print_summary, save_results_json


def _payload(name, version, dependencies=None, published=False):
    package = {"name": name, "version": version, "dependencies": dependencies or {}}
    payload = {
        "name": name,
        "dist-tags": {"latest": version},
        "versions": {version: package},
        "_attachments": {f"{name}-{version}.tgz": {"data": "..."}},
    }
    if published:
        payload["__published"] = True
    return payload


def seed_example_stores(dispatcher):
    """Register `email` as a managed package with `cows` depending on it."""
    stores = dispatcher.stores
    cows = _payload("cows", "2.0.0", {"email": "^2.0.0"})
    stores.packages.create({"name": "email", "version": "2.0.0"})
    stores.packages.create(cows["versions"]["2.0.0"])
    stores.dependents.create(DependentRecord(name="email", dependents=["cows"]))
    stores.versions.create(VersionRecord(
        version_id="cows@2.0.0",
        name="cows",
        version="2.0.0",
        value=json.dumps(cows),
        attachments=cows["_attachments"],
    ))
    stores.build_heads.create(BuildHead(name="cows", env="dev", version="2.0.0"))


def example_publish_in_dev(settings):
    """Example: A publish of `email` in dev republishes `cows`."""
    print("=" * 60)
    print("Example 1: Publish in dev")
    print("=" * 60)

    dispatcher = BuildDispatcher.from_settings(settings)
    try:
        seed_example_stores(dispatcher)
        report = dispatcher.change("dev", _payload("email", "2.0.0", published=True))
        print_summary(report)
        print(f"\nResults saved to: {save_results_json(report, Path('./output/example1'))}")
    finally:
        dispatcher.close()


def example_promotion(settings):
    """Example: Promoting `email` to prod rebuilds the recorded `cows` version."""
    print("\n" + "=" * 60)
    print("Example 2: Promotion to prod")
    print("=" * 60)

    dispatcher = BuildDispatcher.from_settings(settings)
    try:
        report = dispatcher.change("prod", {"data": _payload("email", "2.0.0"), "promote": True})
        for outcome in report.outcomes:
            print(f"{outcome.name}: {outcome.status} ({outcome.strategy}, {outcome.version})")
    finally:
        dispatcher.close()


if __name__ == "__main__":
    import sys

    print("Dependent Trigger - Example Usage")
    print("=" * 60)
    print("\nNOTE: These examples need a build service and an internal registry")
    print("listening on the default URLs from dependent_trigger.config.")

    settings = Settings(store_dir=Path("./output/stores"))

    try:
        example_publish_in_dev(settings)
        example_promotion(settings)

        print("\n" + "=" * 60)
        print("Examples completed successfully!")
        print("=" * 60)

    except Exception as e:
        print(f"\nError running examples: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
