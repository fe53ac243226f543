"""
Interfaces for manifest introspection and registry lookups.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from .models import ManifestRef


class ManifestIntrospector(Protocol):
    """Read-only queries against a package manifest."""

    def package_names(self, manifest: ManifestRef) -> List[str]:
        """Names of the packages the manifest's project produces."""
        ...

    def dependency_names(self, manifest: ManifestRef) -> List[str]:
        """Names of the direct dependencies declared by the manifest's packages."""
        ...

    def resolved_version(self, manifest: ManifestRef, package_name: str) -> Optional[str]:
        """Current resolved version of ``package_name``, or None when absent."""
        ...


class PackageRegistry(Protocol):
    """Report the latest stable published version of a package."""

    def latest_stable_version(self, package_name: str) -> Optional[str]:
        ...
