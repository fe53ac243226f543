"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from .models import OutdatedReport, StalenessRecord


logger = logging.getLogger(__name__)

DELIMITER = ";"

_RECORD_COLUMNS = ["name", "current", "latest", "outdated", "direction"]


def format_package_list(names: Iterable[str]) -> str:
    """Join names as ``a;b;`` so a shell caller can split on the delimiter."""
    return "".join(f"{name}{DELIMITER}" for name in sorted(set(names)))


def parse_package_list(value: str) -> List[str]:
    """Split a delimited list, dropping blanks and duplicates."""
    if not value:
        return []
    names = {part.strip() for part in value.split(DELIMITER)}
    return sorted(name for name in names if name)


def records_to_frame(records: Iterable[StalenessRecord]) -> pd.DataFrame:
    df = pd.DataFrame([asdict(record) for record in records], columns=_RECORD_COLUMNS)
    return df.sort_values("name", ignore_index=True)


def print_summary(report: OutdatedReport) -> None:
    logger.info("=" * 60)
    logger.info("STALENESS RESULTS")
    logger.info("=" * 60)
    logger.info("Upstream packages used: %s", len(report.packages))
    for record in report.records:
        if record.outdated:
            logger.info("  %-30s %s -> %s (%s)", record.name, record.current, record.latest, record.direction)
    logger.info("-" * 60)
    logger.info("Outdated: %s", len(report.outdated))
    logger.info("Skipped (no data): %s", len(report.skipped))
    logger.info("=" * 60)


def save_report_json(report: OutdatedReport, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    report_file = output_dir / "staleness_report.json"
    payload = {
        "packages": sorted(report.packages),
        "outdated": report.outdated,
        "skipped": report.skipped,
        "records": [asdict(record) for record in report.records],
    }
    with open(report_file, 'w') as f:
        json.dump(payload, f, indent=2)
    return report_file


def export_report_csv(report: OutdatedReport, output_dir: Path) -> Path | None:
    if not report.records:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / "staleness_report.csv"
    records_to_frame(report.records).to_csv(csv_file, index=False)
    return csv_file
