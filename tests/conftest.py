"""Shared fixtures for the crate_staleness tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def manifests(tmp_path: Path):
    """Create empty upstream and downstream manifest files and return their resolved paths."""
    upstream = tmp_path / "librustzcash" / "Cargo.toml"
    downstream = tmp_path / "uniffi-zcash" / "Cargo.toml"
    for path in (upstream, downstream):
        path.parent.mkdir(parents=True)
        path.write_text("", encoding="utf-8")
    return upstream.resolve(), downstream.resolve()


@pytest.fixture
def write_file():
    def _write(path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
