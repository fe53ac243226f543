"""
Registry resolvers for crate versions.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from .config import CheckerConfig
from .interfaces import PackageRegistry


logger = logging.getLogger(__name__)


@dataclass
class ResolverCache:
    """Shared in-memory caches for registry lookups."""

    latest_version_cache: Dict[str, Optional[str]] = field(default_factory=dict)
    session: requests.Session = field(default_factory=requests.Session)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def close(self) -> None:
        self.session.close()


class CratesIoRegistry(PackageRegistry):
    """Resolver for crates published on crates.io (or an API-compatible mirror)."""

    def __init__(
        self,
        config: Optional[CheckerConfig] = None,
        cache: Optional[ResolverCache] = None,
    ) -> None:
        self.config = config or CheckerConfig()
        self.cache = cache or ResolverCache()
        self.cache.session.headers.setdefault("User-Agent", self.config.user_agent)

    def fetch_crate_metadata(self, package_name: str) -> Dict:
        url = f"{self.config.registry_url}/{package_name}"
        logger.info("Fetching metadata for %s", package_name)
        with self.cache.session.get(url, timeout=self.config.timeout) as response:
            response.raise_for_status()
            return response.json()

    def latest_stable_version(self, package_name: str) -> Optional[str]:
        """Return ``crate.max_stable_version``, or None when the registry has no answer."""
        with self.cache.lock:
            if package_name in self.cache.latest_version_cache:
                logger.debug("Cache hit: latest version %s", package_name)
                return self.cache.latest_version_cache[package_name]

        try:
            metadata = self.fetch_crate_metadata(package_name)
        except requests.RequestException as e:
            logger.warning("Registry lookup failed for %s: %s", package_name, e)
            return None
        except ValueError as e:
            logger.warning("Registry returned invalid JSON for %s: %s", package_name, e)
            return None

        latest = _max_stable_version(metadata)
        if latest is None:
            logger.warning("No stable release of %s on the registry", package_name)

        with self.cache.lock:
            self.cache.latest_version_cache[package_name] = latest
        return latest


def _max_stable_version(metadata: Dict) -> Optional[str]:
    crate = metadata.get("crate") if isinstance(metadata, dict) else None
    if not isinstance(crate, dict):
        return None
    latest = crate.get("max_stable_version")
    if not isinstance(latest, str) or not latest.strip():
        return None
    return latest.strip()
