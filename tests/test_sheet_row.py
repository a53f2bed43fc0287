"""Tests for spreadsheet row serialization."""

from datetime import date

import pytest

from pipeline_tracker.config.settings import SheetConfig
from pipeline_tracker.services.sheet_row import (
    build_sheet_row,
    column_index_to_letter,
    field_to_column_letter,
    format_cell,
    header_row,
    target_tab,
)


@pytest.mark.parametrize(
    "index, letter",
    [(0, "A"), (25, "Z"), (26, "AA"), (28, "AC"), (32, "AG"), (701, "ZZ"), (702, "AAA")],
)
def test_column_letters(index, letter):
    assert column_index_to_letter(index) == letter


def test_negative_column_rejected():
    with pytest.raises(ValueError):
        column_index_to_letter(-1)


def test_field_letters():
    assert field_to_column_letter("id") == "A"
    assert field_to_column_letter("publisher") == "G"
    assert field_to_column_letter("status") == "AD"
    assert field_to_column_letter("interested_date") == "AG"
    with pytest.raises(KeyError):
        field_to_column_letter("q_gross")


def test_target_tab():
    assert target_tab("cs") == "SEA_CS"
    assert target_tab("sales") == "SEA_Sales"
    assert target_tab(None) == "SEA_Sales"
    custom = SheetConfig(sales_tab="Sales", cs_tab="Success", data_start_row=2)
    assert target_tab("cs", custom) == "Success"


class TestFormatCell:
    def test_dates_become_serials(self):
        assert format_cell("starting_date", "2025-01-01") == 45658
        assert format_cell("action_date", date(2025, 1, 15)) == 45672

    def test_unparseable_date_is_blank(self):
        assert format_cell("proposal_date", "soon") == ""

    def test_percentages_are_fractions(self):
        assert format_cell("revenue_share", 20) == 0.2
        assert format_cell("revenue_share", "50") == 0.5

    def test_decimals_rounded(self):
        assert format_cell("max_gross", 1234.567) == 1234.57
        assert format_cell("ecpm", "2.5") == 2.5

    def test_impressions_are_integers(self):
        assert format_cell("imp", 150000.0) == 150000

    def test_none_is_blank(self):
        assert format_cell("publisher", None) == ""

    def test_text_is_stripped(self):
        assert format_cell("publisher", "  Example Media ") == "Example Media"


def test_build_sheet_row():
    row = build_sheet_row(
        {
            "id": "abc-123",
            "group": "cs",
            "publisher": "Example Media",
            "status": "【A】",
            "revenue_share": 50,
            "starting_date": "2025-01-15",
            "q_gross": 6160,
        }
    )
    assert row.tab == "SEA_CS"
    assert row.cells["A"] == "abc-123"
    assert row.cells["G"] == "Example Media"
    assert row.cells["AD"] == "【A】"
    assert row.cells["V"] == 0.5
    assert row.cells["AC"] == 45672

    cells = row.as_list()
    assert len(cells) == 33
    assert cells[0] == "abc-123"
    assert cells[1] == ""
    assert cells[29] == "【A】"


def test_formula_columns_never_written():
    row = build_sheet_row({"id": "x", "q_gross": 100, "day_gross": 5, "progress_percent": 80})
    assert set(row.cells) == {field_to_column_letter(f) for f in (
        "id", "classification", "poc", "pid", "publisher", "mid", "domain", "description",
        "product", "imp", "ecpm", "max_gross", "revenue_share", "action_date", "next_action",
        "action_detail", "action_progress", "starting_date", "status", "proposal_date",
        "interested_date",
    )}


def test_row_requires_id():
    with pytest.raises(ValueError):
        build_sheet_row({"publisher": "No id"})


def test_header_row():
    headers = header_row()
    assert len(headers) == 33
    assert headers[0] == "id"
    assert headers[29] == "status"
    assert headers[1] == ""


def test_excel_serial_round_trip_anchor():
    from pipeline_tracker.utils.date_utils import from_excel_serial, to_excel_serial

    assert to_excel_serial("2025-01-01") == 45658
    assert from_excel_serial(45658) == date(2025, 1, 1)
    assert from_excel_serial(45672.75) == date(2025, 1, 15)
    assert to_excel_serial(None) is None
