"""Custom exceptions for crate-staleness."""


class StalenessError(Exception):
    """Base exception for all staleness check errors."""


class InvalidInputError(StalenessError, ValueError):
    """Raised when a required manifest locator or setting is empty or invalid."""


class ManifestIntrospectionError(InvalidInputError):
    """Raised when a manifest exists but its package or dependency list cannot be read."""

    def __init__(self, manifest, reason: str):
        self.manifest = manifest
        self.reason = reason
        super().__init__(f"Cannot introspect {manifest}: {reason}")
