"""
Runtime configuration for the checker.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from . import __version__
from .exceptions import InvalidInputError


DEFAULT_REGISTRY_URL = "https://crates.io/api/v1/crates"
DEFAULT_USER_AGENT = f"crate-staleness/{__version__}"

_ENV_PREFIX = "CRATE_STALENESS_"


@dataclass(frozen=True)
class CheckerConfig:
    """Settings shared by the registry client, the introspector and the checker."""

    registry_url: str = DEFAULT_REGISTRY_URL
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 10.0
    max_workers: int = 4
    cargo_bin: str = "cargo"
    cargo_timeout: float = 120.0
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise InvalidInputError(f"timeout must be positive, got {self.timeout}")
        if self.cargo_timeout <= 0:
            raise InvalidInputError(f"cargo_timeout must be positive, got {self.cargo_timeout}")
        if self.max_workers < 1:
            raise InvalidInputError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "CheckerConfig":
        """Build a config from CRATE_STALENESS_* variables; keyword overrides win."""
        env = os.environ if environ is None else environ
        values = {}

        registry_url = env.get(f"{_ENV_PREFIX}REGISTRY_URL", "").strip()
        if registry_url:
            values["registry_url"] = registry_url.rstrip("/")
        user_agent = env.get(f"{_ENV_PREFIX}USER_AGENT", "").strip()
        if user_agent:
            values["user_agent"] = user_agent
        cargo_bin = env.get(f"{_ENV_PREFIX}CARGO", "").strip()
        if cargo_bin:
            values["cargo_bin"] = cargo_bin

        for key, var in (("timeout", "TIMEOUT"), ("cargo_timeout", "CARGO_TIMEOUT")):
            raw = env.get(f"{_ENV_PREFIX}{var}", "").strip()
            if not raw:
                continue
            try:
                values[key] = float(raw)
            except ValueError:
                raise InvalidInputError(f"{_ENV_PREFIX}{var} is not a number: {raw!r}") from None
        max_workers = env.get(f"{_ENV_PREFIX}MAX_WORKERS", "").strip()
        if max_workers:
            try:
                values["max_workers"] = int(max_workers)
            except ValueError:
                raise InvalidInputError(
                    f"{_ENV_PREFIX}MAX_WORKERS is not an integer: {max_workers!r}"
                ) from None

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
