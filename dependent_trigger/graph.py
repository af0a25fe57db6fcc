"""
First-level dependency graph maintenance.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List

from .interfaces import DependentOfStore, DependentStore, PackageStore
from .models import DependentOfRecord, DependentRecord, PackageDescriptor


logger = logging.getLogger(__name__)


class GraphResolver:
    """Record which managed packages a changed package depends on."""

    def __init__(
        self,
        packages: PackageStore,
        dependents: DependentStore,
        dependent_of: DependentOfStore,
        concurrency: int = 20,
    ) -> None:
        self.packages = packages
        self.dependents = dependents
        self.dependent_of = dependent_of
        self.concurrency = concurrency

    def resolve(self, env: str, pkg: PackageDescriptor) -> List[str]:
        """Update Dependent and DependentOf records for `pkg`.

        Only top level dependencies are tracked: a change in a deeper
        dependency triggers its own dependents, which cascades upwards.

        Args:
            env: Environment of the change
            pkg: Descriptor of the changed package

        Returns:
            Names of the managed dependencies that were recorded
        """
        logger.debug("Resolving dependents for %s in %s", pkg.name, env)
        names = list(pkg.dependencies)

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            managed = [
                name
                for name, is_managed in zip(names, pool.map(self._is_managed, names))
                if is_managed
            ]
            logger.debug("Found %d private dependencies for %s", len(managed), pkg.name)

            futures = []
            for dependency in managed:
                futures.append(pool.submit(self._resolve_dependent, pkg.name, dependency))
                futures.append(pool.submit(self._resolve_dependent_of, pkg.name, dependency))
            for future in futures:
                future.result()

        return managed

    def _is_managed(self, name: str) -> bool:
        try:
            return self.packages.get(name) is not None
        except Exception as e:
            logger.debug("Lookup of %s failed, treating as not managed: %s", name, e)
            return False

    def _resolve_dependent(self, name: str, dependency: str) -> None:
        record = self.dependents.get(dependency)

        if record is not None and name in record.dependents:
            logger.debug("Ignoring %s, is already a dependent of %s", name, dependency)
            return

        if record is not None:
            logger.info("Appending %s as dependent of %s", name, dependency)
            self.dependents.update(dependency, [name])
            return

        logger.info("Adding %s as dependent of %s", name, dependency)
        self.dependents.create(DependentRecord(name=dependency, dependents=[name]))

    def _resolve_dependent_of(self, name: str, dependency: str) -> None:
        logger.info("Adding %s as dependent-of of %s", dependency, name)
        self.dependent_of.create(DependentOfRecord(pkg=name, dependent_of=dependency))
