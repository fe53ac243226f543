"""
Dependency extraction and staleness checking for upstream crates.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Tuple, Union

from packaging import version as pkg_version
from tqdm import tqdm

from .config import CheckerConfig
from .interfaces import ManifestIntrospector, PackageRegistry
from .manifests import CargoMetadataIntrospector
from .models import ManifestRef, OutdatedReport, PackageVersion, StalenessRecord
from .resolvers import CratesIoRegistry, ResolverCache


logger = logging.getLogger(__name__)

Locator = Union[str, Path, ManifestRef]


def extract_dependencies(
    upstream_manifest: Locator,
    downstream_manifest: Locator,
    introspector: Optional[ManifestIntrospector] = None,
) -> FrozenSet[str]:
    """Return the downstream's direct dependencies that the upstream project produces.

    Names are matched case-insensitively against an index of the upstream package
    names and reported under the upstream spelling, which is the name the
    registry and the resolved dependency graph use.

    Raises:
        InvalidInputError: if either locator is empty or does not point at a file.
        ManifestIntrospectionError: if either manifest cannot be read.
    """
    upstream = ManifestRef.from_locator(upstream_manifest)
    downstream = ManifestRef.from_locator(downstream_manifest)
    introspector = introspector or CargoMetadataIntrospector()

    upstream_index = {name.lower(): name for name in introspector.package_names(upstream)}
    logger.info("Upstream %s produces %d packages", upstream, len(upstream_index))
    if not upstream_index:
        return frozenset()

    matched = frozenset(
        upstream_index[dep.lower()]
        for dep in introspector.dependency_names(downstream)
        if dep.lower() in upstream_index
    )
    logger.info("Downstream %s uses %d upstream packages", downstream, len(matched))
    return matched


def version_direction(current: Optional[str], latest: Optional[str]) -> str:
    """Describe how ``current`` relates to ``latest``; informational only."""
    if not current or not latest:
        return "unknown"
    if current == latest:
        return "current"
    try:
        current_ver = pkg_version.parse(current)
        latest_ver = pkg_version.parse(latest)
    except pkg_version.InvalidVersion:
        return "differs"
    if current_ver < latest_ver:
        return "behind"
    if current_ver > latest_ver:
        return "ahead"
    return "differs"


def check_package(
    package_name: str,
    downstream: ManifestRef,
    registry: PackageRegistry,
    introspector: ManifestIntrospector,
) -> StalenessRecord:
    """Compare one package's registry version with the downstream's resolved version."""
    latest = PackageVersion(package_name, registry.latest_stable_version(package_name))
    if not latest.version:
        logger.debug("Skipping %s: no registry version", package_name)
        return StalenessRecord.compare(latest, PackageVersion(package_name, None))

    current = PackageVersion(package_name, introspector.resolved_version(downstream, package_name))
    if not current.version:
        logger.debug("Skipping %s: not resolved in %s", package_name, downstream)

    return StalenessRecord.compare(
        latest, current, direction=version_direction(current.version, latest.version)
    )


def check_packages(
    packages: Iterable[str],
    downstream_manifest: Locator,
    registry: Optional[PackageRegistry] = None,
    introspector: Optional[ManifestIntrospector] = None,
    config: Optional[CheckerConfig] = None,
) -> Tuple[StalenessRecord, ...]:
    """Check every package and return the per-package records sorted by name.

    A failure while checking one package is logged and recorded as a missing
    lookup; it never aborts the remaining packages.
    """
    downstream = ManifestRef.from_locator(downstream_manifest)
    config = config or CheckerConfig()
    introspector = introspector or CargoMetadataIntrospector(config)

    names = sorted({name.strip() for name in packages if name and name.strip()})
    if not names:
        return ()

    if registry is None:
        cache = ResolverCache()
        try:
            return check_packages(names, downstream, CratesIoRegistry(config, cache), introspector, config)
        finally:
            cache.close()

    def _safe_check(name: str) -> StalenessRecord:
        try:
            return check_package(name, downstream, registry, introspector)
        except Exception as e:
            logger.warning("Error checking %s: %s", name, e, exc_info=True)
            return StalenessRecord(name=name, latest=None, current=None, outdated=False)

    workers = min(config.max_workers, len(names))
    if workers == 1:
        records = [_safe_check(name) for name in tqdm(names, disable=not config.show_progress)]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(_safe_check, name) for name in names]
            records = [
                future.result()
                for future in tqdm(
                    as_completed(futures),
                    total=len(futures),
                    desc="Checking crates",
                    disable=not config.show_progress,
                )
            ]

    return tuple(sorted(records, key=lambda r: r.name))


def find_outdated(
    packages: Iterable[str],
    downstream_manifest: Locator,
    registry: Optional[PackageRegistry] = None,
    introspector: Optional[ManifestIntrospector] = None,
    config: Optional[CheckerConfig] = None,
) -> List[str]:
    """Return the sorted names whose latest stable and current versions differ.

    Packages with no registry version or no resolved version are left out.

    Raises:
        InvalidInputError: if the downstream locator is empty or does not point at a file.
    """
    records = check_packages(packages, downstream_manifest, registry, introspector, config)
    return [record.name for record in records if record.outdated]


class StalenessAnalyzer:
    """Run dependency extraction and the staleness check end to end."""

    def __init__(
        self,
        upstream_manifest: Locator,
        downstream_manifest: Locator,
        config: Optional[CheckerConfig] = None,
        registry: Optional[PackageRegistry] = None,
        introspector: Optional[ManifestIntrospector] = None,
    ):
        """Initialize the analyzer.

        Args:
            upstream_manifest: Manifest of the project whose packages are consumed
            downstream_manifest: Manifest of the project that depends on them
            config: Checker settings; defaults to ``CheckerConfig()``
            registry: Registry client; defaults to crates.io with a session owned by the analyzer
            introspector: Manifest introspector; defaults to ``cargo metadata``
        """
        self.upstream = ManifestRef.from_locator(upstream_manifest)
        self.downstream = ManifestRef.from_locator(downstream_manifest)
        self.config = config or CheckerConfig()
        self._cache: Optional[ResolverCache] = None
        if registry is None:
            self._cache = ResolverCache()
            registry = CratesIoRegistry(self.config, self._cache)
        self.registry = registry
        self.introspector = introspector or CargoMetadataIntrospector(self.config)

    def __enter__(self) -> "StalenessAnalyzer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()

    def analyze(self) -> OutdatedReport:
        """Extract the used upstream packages and check each against the registry."""
        packages = extract_dependencies(self.upstream, self.downstream, self.introspector)
        records = check_packages(
            packages, self.downstream, self.registry, self.introspector, self.config
        )
        report = OutdatedReport(packages=packages, records=records)
        logger.info(
            "Checked %d packages: %d outdated, %d skipped",
            len(records), len(report.outdated), len(report.skipped),
        )
        return report
