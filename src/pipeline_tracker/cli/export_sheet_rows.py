#!/usr/bin/env python3
"""
Sheet Row Export CLI

Writes pipelines as spreadsheet rows (fixed column layout, Excel serial
dates), either one CSV per tab or a single workbook with one worksheet per
tab laid out from the configured data start row.

Examples:
    pipeline-export-sheet --output-dir exports/ --group sales
    pipeline-export-sheet --format xlsx --output-dir exports/
"""
import argparse
import csv
import logging
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

from openpyxl import Workbook
from tqdm import tqdm

from pipeline_tracker.config.settings import SheetConfig, get_settings
from pipeline_tracker.database.connection import DatabaseConnection
from pipeline_tracker.database.schema import initialize_schema
from pipeline_tracker.repositories.pipeline_repository import PipelineRepository
from pipeline_tracker.services.sheet_row import build_sheet_row, header_row

logger = logging.getLogger(__name__)

WORKBOOK_NAME = "pipelines.xlsx"


def collect_rows(
    repository: PipelineRepository,
    sheet_config: SheetConfig,
    group: Optional[str] = None,
) -> Dict[str, List[list]]:
    """Serialized rows grouped by target tab."""
    pipelines = repository.list_pipelines({"group": group} if group else None)

    rows_by_tab: Dict[str, List[list]] = defaultdict(list)
    for pipeline in tqdm(pipelines, desc="Serializing", unit="pipeline",
                         disable=not sys.stderr.isatty()):
        row = build_sheet_row(pipeline.to_dict(), sheet_config)
        rows_by_tab[row.tab].append(row.as_list())
    return rows_by_tab


def write_csv_files(
    rows_by_tab: Dict[str, List[list]], output_dir: Path, include_header: bool = True
) -> Dict[str, Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    written = {}
    for tab, rows in rows_by_tab.items():
        path = output_dir / f"{tab}.csv"
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if include_header:
                writer.writerow(header_row())
            writer.writerows(rows)
        logger.info(f"Wrote {len(rows)} rows to {path}")
        written[tab] = path
    return written


def write_workbook(
    rows_by_tab: Dict[str, List[list]],
    path: Path,
    data_start_row: int,
    include_header: bool = True,
) -> Path:
    """
    One worksheet per tab. Data rows begin at data_start_row; the header
    (when requested) sits on the row above it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    wb = Workbook()
    wb.remove(wb.active)

    for tab, rows in rows_by_tab.items():
        ws = wb.create_sheet(title=tab)
        if include_header and data_start_row > 1:
            for col, name in enumerate(header_row(), start=1):
                ws.cell(row=data_start_row - 1, column=col, value=name or None)
        for row_num, row in enumerate(rows, start=data_start_row):
            for col, value in enumerate(row, start=1):
                ws.cell(row=row_num, column=col, value=None if value == "" else value)
        logger.info(f"Wrote {len(rows)} rows to {path}[{tab}]")

    wb.save(path)
    wb.close()
    return path


def export_rows(
    repository: PipelineRepository,
    output_dir: Path,
    sheet_config: SheetConfig,
    group: Optional[str] = None,
    include_header: bool = True,
    output_format: str = "csv",
) -> Dict[str, Path]:
    """Export pipelines; returns tab name -> file path (empty when nothing matched)."""
    rows_by_tab = collect_rows(repository, sheet_config, group)
    if not rows_by_tab:
        return {}

    if output_format == "xlsx":
        path = write_workbook(
            rows_by_tab, output_dir / WORKBOOK_NAME, sheet_config.data_start_row, include_header
        )
        return {tab: path for tab in rows_by_tab}
    return write_csv_files(rows_by_tab, output_dir, include_header)


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--db-path", help="SQLite database (default: from settings)")
    p.add_argument("--output-dir", default="exports", help="Directory for the exported files")
    p.add_argument("--group", choices=["sales", "cs"], help="Only this group")
    p.add_argument("--format", dest="output_format", choices=["csv", "xlsx"], default="csv",
                   help="CSV per tab or a single workbook")
    p.add_argument("--no-header", action="store_true", help="Omit the field-name header row")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    settings = get_settings()
    db = DatabaseConnection(args.db_path or settings.database.db_path)
    initialize_schema(db, status_trigger=settings.forecast.status_logged_by_trigger)

    written = export_rows(
        PipelineRepository(db),
        Path(args.output_dir),
        settings.sheet,
        group=args.group,
        include_header=not args.no_header,
        output_format=args.output_format,
    )
    if not written:
        print("No pipelines to export")
        return 0

    for tab, path in written.items():
        print(f"✅ {tab}: {path} (paste at {tab}!A{settings.sheet.data_start_row})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
