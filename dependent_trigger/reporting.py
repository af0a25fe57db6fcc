"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .models import ChangeReport


logger = logging.getLogger(__name__)


OUTCOME_COLUMNS = [
    "root",
    "root_version",
    "env",
    "dependent",
    "status",
    "stage",
    "strategy",
    "action",
    "version",
    "reason",
]

SUMMARY_COLUMNS = [
    "env",
    "payload",
    "name",
    "version",
    "accepted",
    "skipped",
    "failed",
    "status",
    "error",
]


def report_to_dict(report: ChangeReport) -> Dict[str, Any]:
    return asdict(report)


def print_summary(report: ChangeReport) -> None:
    logger.info("=" * 60)
    logger.info("CHANGE RESULTS")
    logger.info("=" * 60)
    logger.info("Package: %s@%s", report.name, report.version)
    logger.info("Environment: %s", report.env)
    logger.info("Publish: %s", report.publish)
    logger.info("Managed dependencies: %s", ", ".join(report.managed_dependencies) or "-")
    logger.info("-" * 60)
    for outcome in report.outcomes:
        logger.info(
            "%-30s %-8s stage=%s strategy=%s version=%s",
            outcome.name, outcome.status, outcome.stage, outcome.strategy, outcome.version,
        )
    logger.info("=" * 60)


def save_results_json(report: ChangeReport, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    safe_name = report.name.replace("/", "__")
    results_file = output_dir / f"{safe_name}_{report.env}_results.json"
    with open(results_file, 'w') as f:
        json.dump(report_to_dict(report), f, indent=2, default=str)
    return results_file


def outcomes_frame(reports: Iterable[ChangeReport]) -> pd.DataFrame:
    """Flatten per-dependent outcomes of several reports into one table."""
    rows: List[Dict[str, Any]] = []
    for report in reports:
        for outcome in report.outcomes:
            rows.append({
                "root": report.name,
                "root_version": report.version,
                "env": report.env,
                "dependent": outcome.name,
                "status": outcome.status,
                "stage": outcome.stage,
                "strategy": outcome.strategy,
                "action": outcome.action,
                "version": outcome.version,
                "reason": outcome.reason,
            })
    return pd.DataFrame(rows, columns=OUTCOME_COLUMNS)


def export_bulk_summary_csv(
    rows: Iterable[Dict[str, Any]],
    output_dir: Path,
    input_csv: Path,
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    summary_file = output_dir / f"{input_csv.stem}_bulk_results.csv"
    df = pd.DataFrame(list(rows), columns=SUMMARY_COLUMNS)
    df.to_csv(summary_file, index=False)
    return summary_file


def export_bulk_outcomes_csv(
    reports: List[ChangeReport],
    output_dir: Path,
    input_csv: Path,
) -> Optional[Path]:
    df = outcomes_frame(reports)
    if df.empty:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    outcomes_file = output_dir / f"{input_csv.stem}_dependent_outcomes.csv"
    df.to_csv(outcomes_file, index=False)
    return outcomes_file
