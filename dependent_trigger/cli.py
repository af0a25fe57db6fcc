"""
Command-line interface for the dependent trigger engine.
"""

import argparse
import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from tqdm import tqdm

from .config import ENVIRONMENTS, Settings
from .dispatcher import ACCEPTED, FAILED, SKIPPED, BuildDispatcher
from .payload import normalize_event
from .reporting import (
    export_bulk_outcomes_csv,
    export_bulk_summary_csv,
    print_summary,
    save_results_json,
)


logger = logging.getLogger(__name__)

REQUIRED_CSV_COLUMNS = ("env", "payload")


def _parse_bool(value: str) -> Optional[bool]:
    value = (value or "").strip().lower()
    if not value:
        return None
    if value in ("1", "true", "yes", "y"):
        return True
    if value in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean value: {value}")


def _load_input_csv(path: Path) -> List[Dict[str, str]]:
    """Read a bulk change CSV with at least `env` and `payload` columns."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = [column for column in REQUIRED_CSV_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing required columns: {', '.join(missing)}")
    return df.to_dict(orient="records")


def _load_event(payload_path: Path, promote: Optional[bool]) -> Dict:
    with open(payload_path, encoding="utf-8") as f:
        body = json.load(f)
    if promote is None:
        return body
    data, _ = normalize_event(body)
    return {"data": data, "promote": promote}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Process package change events and trigger dependent builds"
    )

    parser.add_argument(
        "--env",
        choices=ENVIRONMENTS,
        help="Environment the change happened in (required with --payload)"
    )

    parser.add_argument(
        "--payload",
        help="Path to a JSON change event: {data, promote} or a bare registry payload"
    )

    parser.add_argument(
        "--input-csv",
        help="CSV with env,payload[,promote] columns to process in bulk"
    )

    parser.add_argument(
        "--no-promote",
        action="store_true",
        help="Do not promote builds triggered by --payload"
    )

    parser.add_argument(
        "--config",
        help="JSON settings file"
    )

    parser.add_argument("--store-dir", help="Directory for the JSON record stores")
    parser.add_argument("--concurrency", type=int, help="Maximum in-flight tasks per fan-out")
    parser.add_argument("--build-url", help="Build service base URL")
    parser.add_argument("--publish-url", help="Internal registry URL that accepts publishes")
    parser.add_argument("--registry-url", help="npm registry URL, may include credentials")

    parser.add_argument(
        "--output-dir",
        default="./output",
        help="Output directory for results. Default: ./output"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: INFO"
    )
    return parser


def _run_bulk(dispatcher: BuildDispatcher, input_csv: Path, output_dir: Path) -> int:
    rows = _load_input_csv(input_csv)
    summary = []
    reports = []
    failures = 0

    for row in tqdm(rows, desc="Processing changes", unit="change"):
        payload_path = Path(row["payload"])
        if not payload_path.is_absolute():
            payload_path = input_csv.parent / payload_path
        entry = {"env": row["env"], "payload": row["payload"], "status": "ok", "error": ""}
        try:
            event = _load_event(payload_path, _parse_bool(row.get("promote", "")))
            report = dispatcher.change(row["env"], event)
            reports.append(report)
            entry.update({
                "name": report.name,
                "version": report.version,
                "accepted": len(report.by_status(ACCEPTED)),
                "skipped": len(report.by_status(SKIPPED)),
                "failed": len(report.by_status(FAILED)),
            })
        except Exception as e:
            failures += 1
            logger.error("Error processing %s: %s", payload_path, e)
            logger.debug(traceback.format_exc())
            entry.update({"status": "error", "error": str(e)})
        summary.append(entry)

    summary_file = export_bulk_summary_csv(summary, output_dir, input_csv)
    print(f"Bulk summary saved to: {summary_file}")
    outcomes_file = export_bulk_outcomes_csv(reports, output_dir, input_csv)
    if outcomes_file is not None:
        print(f"Dependent outcomes saved to: {outcomes_file}")
    return 1 if failures else 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.payload and not args.input_csv:
        parser.error("one of --payload or --input-csv is required")
    if args.payload and not args.env:
        parser.error("--env is required with --payload")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_file(Path(args.config)) if args.config else Settings()
        settings = settings.override(
            store_dir=args.store_dir,
            concurrency=args.concurrency,
            build_url=args.build_url,
            publish_url=args.publish_url,
            registry_url=args.registry_url,
        )
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    output_dir = Path(args.output_dir)
    dispatcher = BuildDispatcher.from_settings(settings)

    try:
        if args.input_csv:
            sys.exit(_run_bulk(dispatcher, Path(args.input_csv), output_dir))

        event = _load_event(Path(args.payload), False if args.no_promote else None)
        report = dispatcher.change(args.env, event)
        print_summary(report)

        print("\n" + "=" * 60)
        print(f"Package: {report.name}@{report.version} ({report.env})")
        print(f"Accepted: {len(report.by_status(ACCEPTED))}")
        print(f"Skipped: {len(report.by_status(SKIPPED))}")
        print(f"Failed: {len(report.by_status(FAILED))}")
        print("=" * 60)

        results_file = save_results_json(report, output_dir)
        print(f"\nResults saved to: {results_file}")
        if report.by_status(FAILED):
            sys.exit(1)
    except Exception as e:
        print(f"\nError during change processing: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)
    finally:
        dispatcher.close()


if __name__ == "__main__":
    main()
