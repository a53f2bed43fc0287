#!/usr/bin/env python3
"""
Pipeline Recalculation CLI

Resyncs progress_percent from status and regenerates the three monthly
forecast rows (and q_gross / q_net_rev) of every matching pipeline.

Examples:
    pipeline-recalculate --dry-run
    pipeline-recalculate --group sales --fiscal-year 2025 --fiscal-quarter 2
    pipeline-recalculate --pipeline-id 3f0c... --verbose
"""
import argparse
import logging
import sys
from typing import List, Optional

from tqdm import tqdm

from pipeline_tracker.config.settings import get_settings
from pipeline_tracker.database.connection import DatabaseConnection
from pipeline_tracker.database.schema import initialize_schema
from pipeline_tracker.services.pipeline_service import (
    PipelineService,
    PipelineServiceError,
)

logger = logging.getLogger(__name__)


def _make_pbar(items, desc: str):
    return tqdm(
        items,
        desc=desc,
        unit="pipeline",
        dynamic_ncols=True,
        mininterval=0.3,
        disable=not sys.stderr.isatty(),
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--db-path", help="SQLite database (default: from settings)")
    p.add_argument("--pipeline-id", help="Recalculate a single pipeline")
    p.add_argument("--group", choices=["sales", "cs"], help="Only this group")
    p.add_argument("--status", help="Only pipelines with this status code")
    p.add_argument("--fiscal-year", type=int, help="Override fiscal year for the run")
    p.add_argument("--fiscal-quarter", type=int, choices=[1, 2, 3, 4],
                   help="Override fiscal quarter for the run")
    p.add_argument("--dry-run", action="store_true", help="Calculate and report without writing")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    settings = get_settings()
    db = DatabaseConnection(args.db_path or settings.database.db_path)
    initialize_schema(db, status_trigger=settings.forecast.status_logged_by_trigger)
    service = PipelineService(db, forecast_config=settings.forecast)

    if args.pipeline_id:
        try:
            outcome = service.recalculate_pipeline(
                args.pipeline_id,
                fiscal_year=args.fiscal_year,
                fiscal_quarter=args.fiscal_quarter,
                dry_run=args.dry_run,
            )
        except PipelineServiceError as e:
            logger.error(f"Recalculation failed: {e}")
            return 1
        print(
            f"{outcome.pipeline_id}: q_gross {outcome.old_q_gross} -> {outcome.new_q_gross}, "
            f"q_net_rev {outcome.old_q_net_rev} -> {outcome.new_q_net_rev}, "
            f"progress {outcome.old_progress} -> {outcome.new_progress}"
            f"{' (dry run)' if args.dry_run else ''}"
        )
        return 0

    filters = {"group": args.group, "status": args.status}
    summary = service.recalculate_all(
        filters,
        fiscal_year=args.fiscal_year,
        fiscal_quarter=args.fiscal_quarter,
        dry_run=args.dry_run,
        progress=lambda items: _make_pbar(items, "Recalculating"),
    )

    label = "would update" if args.dry_run else "updated"
    print(f"\n📊 RECALCULATION SUMMARY{' (DRY RUN)' if args.dry_run else ''}:")
    print(f"   • Pipelines processed: {summary.total:,}")
    print(f"   • {label.capitalize()}: {summary.updated:,}")
    print(f"   • Unchanged: {summary.unchanged:,}")
    print(f"   • Failed: {summary.failed:,}")
    for pipeline_id, error in summary.errors[:20]:
        print(f"     ❌ {pipeline_id}: {error}")

    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
