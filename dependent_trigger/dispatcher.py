"""
Process package change events and trigger builds of their dependents.
"""

from __future__ import annotations

import json
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import versioning
from .clients import BuildServiceClient, RegistryClient
from .config import DEFAULT_CONCURRENCY, ENVIRONMENTS, Settings
from .errors import InvalidPayload, NotManaged, UpstreamUnavailable
from .graph import GraphResolver
from .increment import increment
from .interfaces import BuildService, RegistryGateway
from .models import (
    BuildHead,
    ChangeReport,
    PackageDescriptor,
    ReleaseLineEntry,
    TriggerOutcome,
    VersionRecord,
)
from .payload import (
    extract_latest,
    is_published,
    latest_descriptor,
    merge_package_record,
    normalize_event,
)
from .release_line import ReleaseLineManager
from .stores import Stores
from .strategy import DEV_ENV, PREVIOUS, decide


logger = logging.getLogger(__name__)


SKIPPED = "skipped"
ACCEPTED = "accepted"
FAILED = "failed"


@dataclass
class _Attempt:
    """Progress of a single dependent-trigger attempt."""

    name: str
    stage: str = "lookup"
    strategy: Optional[str] = None
    action: Optional[str] = None
    version: Optional[str] = None

    def outcome(self, status: str, reason: Optional[str] = None) -> TriggerOutcome:
        return TriggerOutcome(
            name=self.name,
            status=status,
            stage=self.stage,
            strategy=self.strategy,
            action=self.action,
            version=self.version,
            reason=reason,
        )


class BuildDispatcher:
    """Resolve the dependency graph for a change and trigger dependent builds."""

    def __init__(
        self,
        stores: Stores,
        build_service: BuildService,
        registry: RegistryGateway,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            stores: Record stores for packages, graph, release lines and builds
            build_service: Client used for `build` actions
            registry: Client used for registry reads and `publish` actions
            concurrency: Maximum number of in-flight tasks per fan-out
        """
        self.stores = stores
        self.build_service = build_service
        self.registry = registry
        self.concurrency = concurrency
        self.release = ReleaseLineManager(stores.release_lines)
        self.resolver = GraphResolver(
            stores.packages, stores.dependents, stores.dependent_of, concurrency
        )
        self._closed = False

    @classmethod
    def from_settings(
        cls, settings: Settings, stores: Optional[Stores] = None
    ) -> "BuildDispatcher":
        if stores is None:
            if settings.store_dir is not None:
                stores = Stores.from_directory(settings.store_dir)
            else:
                stores = Stores.in_memory()
        registry = RegistryClient(
            settings.registry_url,
            settings.publish_url,
            retries=settings.retries,
            backoff_factor=settings.backoff_factor,
        )
        return cls(stores, BuildServiceClient(settings.build_url), registry, settings.concurrency)

    def change(self, env: str, event: Dict[str, Any]) -> ChangeReport:
        """Process the change of a package in an environment.

        Args:
            env: One of dev, test or prod
            event: `{data, promote}` or a bare registry payload

        Returns:
            ChangeReport with the outcome of every dependent

        Raises:
            InvalidPayload: before any write, for an unknown environment or a
                payload without a resolvable latest name/version
        """
        if env not in ENVIRONMENTS:
            raise InvalidPayload(f"Incorrect environment requested: {env}")
        data, promote = normalize_event(event)
        pkg = latest_descriptor(data)

        logger.info("Processing change for %s in %s", pkg.spec, env)

        # Both trigger steps read the graph this writes.
        managed = self.resolver.resolve(env, pkg)
        report = self.trigger(env, data, promote)
        report.managed_dependencies = managed

        logger.info("Successfully processed change for %s in %s", pkg.spec, env)
        return report

    def trigger(self, env: str, data: Dict[str, Any], promote: bool = True) -> ChangeReport:
        """Trigger dependent builds and, on publish, join the parent's release line."""
        publish = env == DEV_ENV and is_published(data)
        pkg = latest_descriptor(data)

        with ThreadPoolExecutor(max_workers=2) as pool:
            dependents = pool.submit(self.trigger_dependents, env, pkg, publish, promote)
            parent = pool.submit(self.trigger_dependent_of, pkg) if publish else None
            outcomes = dependents.result()
            if parent is not None:
                parent.result()

        return ChangeReport(
            name=pkg.name, version=pkg.version, env=env, publish=publish, outcomes=outcomes
        )

    def trigger_dependent_of(self, pkg: PackageDescriptor) -> Optional[ReleaseLineEntry]:
        """Record a freshly published package on its parent's release line.

        Returns:
            The parent release line entry it was added to, if any
        """
        record = self.stores.dependent_of.get(pkg.name)
        if record is None or not record.dependent_of:
            logger.info("%s does not have a parent package it depends on", pkg.name)
            return None

        parent = record.dependent_of
        line = self.release.get(parent)
        if line is None:
            logger.info("No release line found for %s", parent)
            return None

        root_range = pkg.dependencies.get(line.pkg)

        # The publish may target an older release line than the head.
        if not versioning.satisfies(line.version, root_range):
            line = self.release.walk(
                line, lambda entry: not versioning.satisfies(entry.version, root_range)
            )

        if line is None:
            logger.info("Could not find %s release line to satisfy %s", parent, root_range)
            return None

        logger.debug("Adding dependent %s to release line %s", pkg.spec, line.key)
        self.release.add_dependent(line.pkg, line.version, pkg.name, pkg.version)
        return line

    def trigger_dependents(
        self, env: str, pkg: PackageDescriptor, publish: bool, promote: bool
    ) -> List[TriggerOutcome]:
        """Advance the package's own release line and fan out to its dependents."""
        if publish:
            release_line = self.release.get(pkg.name)
        else:
            release_line = self.release.get(pkg.name, pkg.version)
        record = self.stores.dependents.get(pkg.name)

        if publish:
            if release_line is not None and release_line.version == pkg.version:
                logger.warning(
                    "%s already has release-line, ignoring release-line create", pkg.spec
                )
            else:
                previous = self.release.predecessor(pkg.name, pkg.version)
                self.release.create(pkg.name, pkg.version, previous)

        logger.debug("Trying to rebuild the dependents of %s", pkg.name)
        if record is None or not record.dependents:
            logger.debug("Found no dependents for %s", pkg.name)
            return []

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            futures = [
                pool.submit(
                    self._trigger_one, env, pkg, name, release_line, publish, promote
                )
                for name in record.dependents
            ]
            return [future.result() for future in futures]

    def _trigger_one(
        self,
        env: str,
        root: PackageDescriptor,
        name: str,
        release_line: Optional[ReleaseLineEntry],
        publish: bool,
        promote: bool,
    ) -> TriggerOutcome:
        attempt = _Attempt(name=name)
        try:
            return self._run_pipeline(attempt, env, root, release_line, publish, promote)
        except NotManaged as e:
            logger.debug("Skipping %s at stage %s: %s", name, attempt.stage, e)
            return attempt.outcome(SKIPPED, str(e))
        except Exception as e:
            logger.error(
                "Triggering %s for %s failed at stage %s (strategy: %s): %s",
                name, root.spec, attempt.stage, attempt.strategy, e,
            )
            logger.error(traceback.format_exc())
            return attempt.outcome(FAILED, str(e))

    def _run_pipeline(
        self,
        attempt: _Attempt,
        env: str,
        root: PackageDescriptor,
        release_line: Optional[ReleaseLineEntry],
        publish: bool,
        promote: bool,
    ) -> TriggerOutcome:
        name = attempt.name
        # Promotions rebuild the dependent version recorded for this root version.
        release_version = release_line.dependents.get(name) if release_line else None

        record = self.stores.packages.get(name)
        if record is None:
            raise NotManaged(f"Package {name} not found")
        registry_root = self.registry.fetch(root.name)
        if registry_root is None:
            raise NotManaged(f"Package {root.name} not found in configured registry")
        dependent = PackageDescriptor.from_dict(record)

        attempt.stage = "strategy"
        decision = decide(
            env,
            root,
            dependent,
            release_line,
            list((registry_root.get("versions") or {}).keys()),
        )
        attempt.strategy = decision.strategy
        logger.info(
            "Trigger strategy for %s: strategy=%s trigger=%s fetch_release_version=%s",
            name, decision.strategy, decision.trigger, decision.fetch_release_version,
        )
        if not decision.trigger:
            reason = (
                f"Not triggering dependent build for {dependent.spec}, "
                f"doesnt include {root.name} version {root.version}"
            )
            logger.info(reason)
            return attempt.outcome(SKIPPED, reason)

        attempt.stage = "release-line"
        previous_release_version = None
        if publish and decision.fetch_release_version:
            logger.info("Fetch previous release line for %s@%s",
                        root.name, decision.fetch_release_version)
            line = self.release.get(root.name, decision.fetch_release_version)
            previous_release_version = line.dependents.get(name) if line else None

        if publish and decision.strategy == PREVIOUS:
            target = versioning.major(release_line.version) - 1
            # Entries of the target major that never recorded this dependent are passed over.
            line = self.release.walk(
                release_line,
                lambda entry: target < versioning.major(entry.version)
                or (target == versioning.major(entry.version) and name not in entry.dependents),
            )
            previous_release_version = line.dependents.get(name) if line else None

        if decision.strategy == PREVIOUS and not previous_release_version:
            raise NotManaged(f"No previous release line of {root.name} records {name}")

        if not publish and release_version:
            fetch_version = release_version
        elif previous_release_version:
            fetch_version = previous_release_version
        else:
            fetch_version = dependent.version

        attempt.stage = "version"
        logger.debug("Fetch version and build head of %s@%s", name, fetch_version)
        version = self.stores.versions.get(f"{name}@{fetch_version}")
        if version is None:
            raise NotManaged(f"Unable to find {name}@{fetch_version}")
        head = self.stores.build_heads.get(env, name) or BuildHead(name=name, env=env)

        attempt.stage = "attachment"
        data = self._expand_version(version, record, env)
        if data is None:
            logger.warning("No attachment found for %s", version.version_id)
            raise NotManaged(f"No attachment found for {version.version_id}")

        attempt.stage = "increment"
        result = increment(
            decision.strategy,
            data,
            head,
            release_version=release_version,
            previous_release_version=previous_release_version,
            publish=publish,
        )
        attempt.action = result.action
        attempt.version = extract_latest(result.payload).get("version")

        attempt.stage = "dispatch"
        logger.info("Triggering %s action for %s", result.action, data.get("name"))
        if result.action == "publish":
            self.publish(result.payload)
        else:
            self.build(result.payload, promote)
        return attempt.outcome(ACCEPTED)

    def _expand_version(
        self, version: VersionRecord, record: Dict[str, Any], env: str
    ) -> Optional[Dict[str, Any]]:
        logger.info("Getting attachments for %s", version.version_id)
        body = self.stores.versions.get_attachment(version)
        if not body:
            return None

        data = json.loads(body["value"])
        data["_attachments"] = body.get("attachments") or {}
        merge_package_record(data, record)

        # Builds run in the environment that initiated them.
        data["env"] = env
        return data

    def build(self, data: Dict[str, Any], promote: bool = True) -> Dict[str, Any]:
        """Submit a build and wait for its first status event only.

        Returns:
            The first non-error status event

        Raises:
            UpstreamUnavailable: on a transport error, an `error` event or an
                empty status stream
        """
        name = data.get("name")
        meta = {"env": data.get("env"), "name": name, "dist_tags": data.get("dist-tags")}

        events = self.build_service.build({"promote": promote, "data": data})
        try:
            for event in events:
                logger.info("Build status for %s: %s", name, event)
                if event.get("event") == "error":
                    logger.error("Build service errored: %s", dict(meta, message=event.get("message")))
                    raise UpstreamUnavailable(
                        f"Build of {name} errored: {event.get('message', event)}"
                    )
                return event
        finally:
            close = getattr(events, "close", None)
            if close is not None:
                close()

        logger.info("Build log for %s ended without a status event", name)
        raise UpstreamUnavailable(f"Build log for {name} ended without a status event")

    def publish(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.registry.publish(data["name"], data)

    def close(self) -> bool:
        """Release client sessions; only the first call does anything."""
        if self._closed:
            return False
        for client in (self.build_service, self.registry):
            close = getattr(client, "close", None)
            if close is not None:
                close()
        self._closed = True
        return True
