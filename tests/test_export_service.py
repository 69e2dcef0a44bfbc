"""
Tests for the Excel export
"""
import io
from datetime import date
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from tollvault.domain.services.aggregator import aggregate
from tollvault.domain.services.export_service import (
    HISTORY_HEADERS,
    _sanitize_text,
    generate_history_report_excel,
)
from tollvault.domain.services.ledger_store import HistoryRow, Period


class TestSanitizeText:
    """Formula injection guard"""

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["=SUM(A1:A10)", "+cmd", "-1+1", "@SUM(A1)", "\t=cmd"])
    def test_formula_prefix_quoted(self, value):
        assert _sanitize_text(value) == f"'{value}"

    @pytest.mark.unit
    def test_safe_text_unchanged(self):
        assert _sanitize_text("2024-W02") == "2024-W02"
        assert _sanitize_text("") == ""


def _rows() -> list[HistoryRow]:
    return [
        HistoryRow("2024-02", aggregate([(Decimal("125"), Decimal("22.5"))])),
        HistoryRow("2024-01", aggregate([(Decimal("75"), Decimal("13.5")), (Decimal("0"), Decimal("0"))])),
    ]


class TestHistoryReport:

    @pytest.mark.unit
    def test_layout(self):
        content = generate_history_report_excel(_rows(), Period.MONTH, date(2024, 1, 1), date(2024, 2, 29))

        ws = load_workbook(io.BytesIO(content)).active
        assert ws.title == "History"
        assert ws.cell(row=1, column=1).value == "Monthly collection history"
        assert ws.cell(row=2, column=1).value == "Upload dates: 2024-01-01 to 2024-02-29"
        assert [ws.cell(row=4, column=c).value for c in range(1, 8)] == HISTORY_HEADERS

        assert ws.cell(row=5, column=1).value == "2024-02"
        assert ws.cell(row=5, column=2).value == 125
        assert ws.cell(row=6, column=7).value == 2

    @pytest.mark.unit
    def test_totals_row(self):
        ws = load_workbook(io.BytesIO(generate_history_report_excel(_rows(), Period.MONTH))).active

        assert ws.cell(row=7, column=1).value == "Total"
        assert ws.cell(row=7, column=2).value == 200
        assert ws.cell(row=7, column=3).value == 36
        assert [ws.cell(row=7, column=c).value for c in range(4, 8)] == [1, 1, 1, 3]
        assert "₹" in ws.cell(row=7, column=2).number_format

    @pytest.mark.unit
    def test_empty_history(self):
        ws = load_workbook(io.BytesIO(generate_history_report_excel([], Period.DAY))).active
        assert ws.cell(row=2, column=1).value == "Upload dates: all dates"
        assert ws.cell(row=5, column=1).value == "Total"
        assert ws.cell(row=5, column=7).value == 0
