# src/pipeline_tracker/services/sheet_row.py
"""
Spreadsheet row serialization.

Maps pipeline fields onto the fixed column layout of the SEA_Sales / SEA_CS
tabs. Columns holding sheet formulas (day_gross, day_net_rev, progress %,
q_gross) are never written.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pipeline_tracker.config.settings import SheetConfig
from pipeline_tracker.utils.date_utils import to_excel_serial

logger = logging.getLogger(__name__)

# 0-based column index per field (A = 0)
SHEET_COLUMN_MAPPING: Dict[str, int] = {
    "id": 0,
    "classification": 2,
    "poc": 3,
    "pid": 5,
    "publisher": 6,
    "mid": 8,
    "domain": 9,
    "description": 14,
    "product": 15,
    "imp": 18,
    "ecpm": 19,
    "max_gross": 20,
    "revenue_share": 21,
    "action_date": 23,
    "next_action": 24,
    "action_detail": 25,
    "action_progress": 26,
    "starting_date": 28,
    "status": 29,
    "proposal_date": 31,
    "interested_date": 32,
}

IDENTIFIER_FIELD = "id"
DECIMAL_FIELDS = {"ecpm", "max_gross", "day_gross", "day_net_rev", "q_gross", "q_net_rev"}
PERCENT_FIELDS = {"revenue_share", "progress_percent"}

DEFAULT_SHEET_CONFIG = SheetConfig(sales_tab="SEA_Sales", cs_tab="SEA_CS", data_start_row=3)


def column_index_to_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 28 -> AC."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative: {index}")
    letter = ""
    num = index
    while num >= 0:
        letter = chr(num % 26 + 65) + letter
        num = num // 26 - 1
    return letter


def field_to_column_letter(field_name: str) -> str:
    if field_name not in SHEET_COLUMN_MAPPING:
        raise KeyError(f"Unknown sheet field: {field_name}")
    return column_index_to_letter(SHEET_COLUMN_MAPPING[field_name])


def target_tab(group: Optional[str], config: SheetConfig = DEFAULT_SHEET_CONFIG) -> str:
    """Tab for a pipeline group; anything but 'cs' goes to the sales tab."""
    if group == "cs":
        return config.cs_tab
    return config.sales_tab


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def format_cell(field_name: str, value: Any) -> Any:
    """Sheet representation of one field value."""
    if value is None:
        return ""

    if field_name.endswith("_date"):
        serial = to_excel_serial(value)
        return serial if serial is not None else ""

    if field_name in DECIMAL_FIELDS:
        number = _number(value)
        return round(number, 2) if number is not None else ""

    if field_name in PERCENT_FIELDS:
        # 20 -> 0.2; the sheet formats these columns as percentages
        number = _number(value)
        return number / 100 if number is not None else ""

    if field_name == "imp":
        number = _number(value)
        return int(number) if number is not None else ""

    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)

    return str(value).strip()


@dataclass
class SheetRow:
    """A pipeline rendered for one spreadsheet tab."""
    tab: str
    cells: Dict[str, Any]

    @property
    def width(self) -> int:
        return max(SHEET_COLUMN_MAPPING.values()) + 1

    def as_list(self) -> List[Any]:
        """Dense row from column A to the last mapped column."""
        row: List[Any] = [""] * self.width
        for index in SHEET_COLUMN_MAPPING.values():
            row[index] = self.cells.get(column_index_to_letter(index), "")
        return row


def build_sheet_row(pipeline: Dict[str, Any], config: SheetConfig = DEFAULT_SHEET_CONFIG) -> SheetRow:
    """
    Serialize a pipeline dict into column letter -> cell value.

    Raises:
        ValueError: When the pipeline has no id (rows are matched on column A)
    """
    if not pipeline.get(IDENTIFIER_FIELD):
        raise ValueError("Pipeline id is required to build a sheet row")

    cells = {
        column_index_to_letter(index): format_cell(field_name, pipeline.get(field_name))
        for field_name, index in SHEET_COLUMN_MAPPING.items()
    }
    return SheetRow(tab=target_tab(pipeline.get("group"), config), cells=cells)


def header_row() -> List[str]:
    """Column headers for CSV export (mapped field name or blank)."""
    headers = [""] * (max(SHEET_COLUMN_MAPPING.values()) + 1)
    for field_name, index in SHEET_COLUMN_MAPPING.items():
        headers[index] = field_name
    return headers
