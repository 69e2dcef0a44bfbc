"""
Report export - styled Excel workbook (openpyxl) of the collection history.
"""
import io
from datetime import date
from typing import Any, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from tollvault.domain.services.aggregator import AggregateTotals
from tollvault.domain.services.ledger_store import HistoryRow, Period


# ==================== Styles ====================

_HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
_HEADER_FONT = Font(name="Arial", bold=True, color="FFFFFF", size=11)
_TITLE_FONT = Font(name="Arial", bold=True, size=14)
_SUBTITLE_FONT = Font(name="Arial", bold=False, size=10, color="666666")
_TOTAL_FONT = Font(name="Arial", bold=True, size=11)
_TOTAL_FILL = PatternFill(start_color="D9E2F3", end_color="D9E2F3", fill_type="solid")
_CURRENCY_FORMAT = '"₹"#,##0.00'

_THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

_TEXT_ALIGN = Alignment(horizontal="left", vertical="center")
_NUMBER_ALIGN = Alignment(horizontal="right", vertical="center")

HISTORY_HEADERS = [
    "Period",
    "Revenue",
    "GST",
    "₹125 count",
    "₹75 count",
    "₹0 count",
    "Transactions",
]

_PERIOD_LABELS = {
    Period.DAY: "Daily",
    Period.WEEK: "Weekly",
    Period.MONTH: "Monthly",
    Period.YEAR: "Yearly",
}


def _auto_fit_columns(ws: Any) -> None:
    """Fit column width to content, between 10 and 40 characters"""
    for col_cells in ws.columns:
        max_length = 0
        col_letter = get_column_letter(col_cells[0].column)
        for cell in col_cells:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max(max_length + 4, 10), 40)


def _style_row(ws: Any, row: int, col_count: int, font: Optional[Font] = None,
               fill: Optional[PatternFill] = None) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        if font is not None:
            cell.font = font
        if fill is not None:
            cell.fill = fill
        cell.alignment = _TEXT_ALIGN if col == 1 else _NUMBER_ALIGN
        cell.border = _THIN_BORDER


def _write_title(ws: Any, title: str, subtitle: str, start_row: int = 1) -> int:
    """Title and subtitle; returns the next free row after a blank spacer"""
    ws.cell(row=start_row, column=1, value=title).font = _TITLE_FONT
    ws.cell(row=start_row + 1, column=1, value=subtitle).font = _SUBTITLE_FONT
    return start_row + 3


def _format_currency_cell(cell: Any) -> None:
    cell.number_format = _CURRENCY_FORMAT


# Leading characters Excel would evaluate as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_text(value: str) -> str:
    """Prefix a single quote so Excel shows the text instead of evaluating it"""
    if isinstance(value, str) and value and value[0] in _FORMULA_PREFIXES:
        return f"'{value}"
    return value


def _write_totals(ws: Any, row: int, label: str, totals: AggregateTotals) -> None:
    values = [
        _sanitize_text(label),
        totals.revenue,
        totals.gst,
        totals.slabs.count_125,
        totals.slabs.count_75,
        totals.slabs.count_0,
        totals.rows,
    ]
    for col, value in enumerate(values, start=1):
        ws.cell(row=row, column=col, value=value)
    _format_currency_cell(ws.cell(row=row, column=2))
    _format_currency_cell(ws.cell(row=row, column=3))


# ==================== History report ====================


def generate_history_report_excel(
    rows: list[HistoryRow],
    period: Period,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> bytes:
    """
    Build the history workbook: one line per period bucket plus a totals line.

    Args:
        rows: history buckets, most recent first
        period: bucket granularity, used in the title
        date_from / date_to: applied filter, shown in the subtitle

    Returns:
        bytes - XLSX content
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "History"

    if date_from or date_to:
        range_text = f"{date_from.isoformat() if date_from else '...'} to {date_to.isoformat() if date_to else '...'}"
    else:
        range_text = "all dates"
    next_row = _write_title(
        ws,
        f"{_PERIOD_LABELS[period]} collection history",
        f"Upload dates: {range_text}",
    )

    col_count = len(HISTORY_HEADERS)
    for col, header in enumerate(HISTORY_HEADERS, start=1):
        ws.cell(row=next_row, column=col, value=header)
    _style_row(ws, next_row, col_count, font=_HEADER_FONT, fill=_HEADER_FILL)
    next_row += 1

    grand_total = AggregateTotals()
    for history_row in rows:
        _write_totals(ws, next_row, history_row.period, history_row.totals)
        _style_row(ws, next_row, col_count)
        grand_total.merge(history_row.totals)
        next_row += 1

    _write_totals(ws, next_row, "Total", grand_total)
    _style_row(ws, next_row, col_count, font=_TOTAL_FONT, fill=_TOTAL_FILL)

    _auto_fit_columns(ws)
    ws.freeze_panes = ws.cell(row=5, column=1)

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()
