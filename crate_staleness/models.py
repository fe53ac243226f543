"""
Core data models for the staleness check.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple, Union

from .exceptions import InvalidInputError


@dataclass(frozen=True)
class ManifestRef:
    """A package manifest to introspect."""

    path: Path

    @classmethod
    def from_locator(cls, locator: Union[str, Path, "ManifestRef", None]) -> "ManifestRef":
        """Build a reference, rejecting empty or missing locators."""
        if isinstance(locator, ManifestRef):
            return locator
        if locator is None or not str(locator).strip():
            raise InvalidInputError("manifest locator is empty")
        path = Path(str(locator).strip())
        if not path.is_file():
            raise InvalidInputError(f"manifest not found: {path}")
        return cls(path=path.resolve())

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class PackageVersion:
    """A package name paired with a version string."""

    name: str
    version: Optional[str]


@dataclass(frozen=True)
class StalenessRecord:
    """Outcome of comparing one package against the registry."""

    name: str
    latest: Optional[str]
    current: Optional[str]
    outdated: bool
    direction: str = "unknown"

    @classmethod
    def compare(
        cls, latest: PackageVersion, current: PackageVersion, direction: str = "unknown"
    ) -> "StalenessRecord":
        """Outdated only when both versions are known and differ as strings."""
        outdated = bool(latest.version) and bool(current.version) and latest.version != current.version
        return cls(
            name=latest.name,
            latest=latest.version or None,
            current=current.version or None,
            outdated=outdated,
            direction=direction,
        )


@dataclass(frozen=True)
class OutdatedReport:
    """Result of a full extract-then-check run."""

    packages: FrozenSet[str]
    records: Tuple[StalenessRecord, ...] = field(default_factory=tuple)

    @property
    def outdated(self) -> List[str]:
        return sorted(r.name for r in self.records if r.outdated)

    @property
    def skipped(self) -> List[str]:
        return sorted(r.name for r in self.records if not r.latest or not r.current)
