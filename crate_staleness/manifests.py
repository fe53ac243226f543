"""
Manifest introspectors for Cargo projects.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .config import CheckerConfig
from .exceptions import ManifestIntrospectionError
from .interfaces import ManifestIntrospector
from .models import ManifestRef


logger = logging.getLogger(__name__)

_DEP_SECTIONS = ("dependencies", "dev-dependencies", "build-dependencies")


def _join_versions(versions: Iterable[str]) -> Optional[str]:
    """Collapse the versions a graph resolves for one package into a single string."""
    distinct = sorted({v for v in versions if v})
    if not distinct:
        return None
    return ", ".join(distinct)


class CargoMetadataIntrospector(ManifestIntrospector):
    """Introspect manifests through ``cargo metadata --format-version=1``."""

    def __init__(self, config: Optional[CheckerConfig] = None) -> None:
        self.config = config or CheckerConfig()
        self._cache: Dict[Tuple[Path, bool], Union[Dict, ManifestIntrospectionError]] = {}
        self._lock = threading.Lock()

    def package_names(self, manifest: ManifestRef) -> List[str]:
        metadata = self._metadata(manifest, no_deps=True)
        return [pkg["name"] for pkg in metadata.get("packages", [])]

    def dependency_names(self, manifest: ManifestRef) -> List[str]:
        metadata = self._metadata(manifest, no_deps=True)
        return [
            dep["name"]
            for pkg in metadata.get("packages", [])
            for dep in pkg.get("dependencies", [])
        ]

    def resolved_version(self, manifest: ManifestRef, package_name: str) -> Optional[str]:
        try:
            metadata = self._metadata(manifest, no_deps=False)
        except ManifestIntrospectionError as e:
            logger.warning("No resolved version for %s: %s", package_name, e.reason)
            return None
        return _join_versions(
            pkg.get("version")
            for pkg in metadata.get("packages", [])
            if pkg.get("name") == package_name
        )

    def _metadata(self, manifest: ManifestRef, no_deps: bool) -> Dict:
        cache_key = (manifest.path, no_deps)
        # Held across the subprocess call so concurrent workers share one cargo run.
        with self._lock:
            if cache_key not in self._cache:
                try:
                    self._cache[cache_key] = self._run_cargo_metadata(manifest, no_deps)
                except ManifestIntrospectionError as e:
                    self._cache[cache_key] = e
            else:
                logger.debug("Cache hit: cargo metadata %s (no_deps=%s)", manifest, no_deps)
            cached = self._cache[cache_key]

        if isinstance(cached, ManifestIntrospectionError):
            raise cached
        return cached

    def _run_cargo_metadata(self, manifest: ManifestRef, no_deps: bool) -> Dict:
        cmd = [self.config.cargo_bin, "metadata", "--format-version=1", "--quiet"]
        if no_deps:
            cmd.append("--no-deps")
        cmd.append(f"--manifest-path={manifest.path}")

        logger.info("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.cargo_timeout,
            )
        except FileNotFoundError:
            raise ManifestIntrospectionError(manifest, f"{self.config.cargo_bin} not found") from None
        except subprocess.TimeoutExpired:
            raise ManifestIntrospectionError(
                manifest, f"cargo metadata timed out after {self.config.cargo_timeout}s"
            ) from None

        if result.returncode != 0:
            raise ManifestIntrospectionError(manifest, result.stderr.strip() or "cargo metadata failed")

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ManifestIntrospectionError(manifest, f"invalid cargo metadata output: {e}") from e


class TomlManifestIntrospector(ManifestIntrospector):
    """Introspect ``Cargo.toml`` and ``Cargo.lock`` files without a Rust toolchain."""

    def __init__(self) -> None:
        self._toml_cache: Dict[Path, Dict] = {}
        self._lock = threading.Lock()

    def package_names(self, manifest: ManifestRef) -> List[str]:
        names = []
        for _, data in self._workspace_manifests(manifest):
            name = data.get("package", {}).get("name")
            if name:
                names.append(name)
        return names

    def dependency_names(self, manifest: ManifestRef) -> List[str]:
        root = self._load(manifest.path)
        workspace_deps = root.get("workspace", {}).get("dependencies", {})

        names = []
        for _, data in self._workspace_manifests(manifest):
            tables = [data.get(section, {}) for section in _DEP_SECTIONS]
            for target in data.get("target", {}).values():
                tables.extend(target.get(section, {}) for section in _DEP_SECTIONS)
            for table in tables:
                for key, spec in table.items():
                    names.append(_dependency_package_name(key, spec, workspace_deps))
        return names

    def resolved_version(self, manifest: ManifestRef, package_name: str) -> Optional[str]:
        lock_path = _find_lockfile(manifest.path.parent)
        if lock_path is None:
            logger.warning("No Cargo.lock found for %s", manifest)
            return None
        try:
            lock = self._load(lock_path)
        except ManifestIntrospectionError as e:
            logger.warning("No resolved version for %s: %s", package_name, e.reason)
            return None
        return _join_versions(
            pkg.get("version")
            for pkg in lock.get("package", [])
            if pkg.get("name") == package_name
        )

    def _workspace_manifests(self, manifest: ManifestRef) -> List[Tuple[Path, Dict]]:
        root = self._load(manifest.path)
        found = []
        if "package" in root:
            found.append((manifest.path, root))

        workspace = root.get("workspace", {})
        base = manifest.path.parent
        excluded = {
            path.resolve()
            for pattern in workspace.get("exclude", [])
            for path in _glob_members(manifest, base, pattern)
        }
        seen = {manifest.path}
        for pattern in workspace.get("members", []):
            for member_dir in sorted(_glob_members(manifest, base, pattern)):
                member_manifest = (member_dir / "Cargo.toml").resolve()
                if member_dir.resolve() in excluded or member_manifest in seen:
                    continue
                if not member_manifest.is_file():
                    continue
                seen.add(member_manifest)
                found.append((member_manifest, self._load(member_manifest)))
        return found

    def _load(self, path: Path) -> Dict:
        with self._lock:
            if path in self._toml_cache:
                return self._toml_cache[path]
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ManifestIntrospectionError(path, str(e)) from e
        with self._lock:
            self._toml_cache[path] = data
        return data


def _dependency_package_name(key: str, spec, workspace_deps: Dict) -> str:
    """Resolve the real package name behind a dependency entry."""
    if isinstance(spec, dict):
        if spec.get("package"):
            return spec["package"]
        if spec.get("workspace") is True:
            inherited = workspace_deps.get(key)
            if isinstance(inherited, dict) and inherited.get("package"):
                return inherited["package"]
    return key


def _glob_members(manifest: ManifestRef, base: Path, pattern: str) -> List[Path]:
    """Expand a workspace member or exclude pattern relative to the workspace root."""
    if not isinstance(pattern, str) or not pattern.strip():
        raise ManifestIntrospectionError(manifest, f"invalid workspace path pattern: {pattern!r}")
    if Path(pattern).is_absolute():
        raise ManifestIntrospectionError(
            manifest, f"workspace path pattern must be relative to the workspace root: {pattern}"
        )
    try:
        return list(base.glob(pattern))
    except (NotImplementedError, ValueError) as e:
        raise ManifestIntrospectionError(manifest, f"invalid workspace path pattern {pattern!r}: {e}") from e


def _find_lockfile(start: Path) -> Optional[Path]:
    for directory in (start, *start.parents):
        candidate = directory / "Cargo.lock"
        if candidate.is_file():
            return candidate
    return None
