"""
Dashboard - server-rendered HTML pages for the browser
"""
from datetime import date
from html import escape
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tollvault.api.routes.schemas import parse_date_param, parse_period
from tollvault.api.routes.uploads import receive_upload
from tollvault.core.config import settings
from tollvault.core.exceptions import AppException
from tollvault.core.logging import get_logger
from tollvault.db.database import get_db
from tollvault.domain.services.aggregator import AggregateTotals
from tollvault.domain.services.ledger_store import HistoryRow, LedgerStore, Period
from tollvault.domain.services.report_service import ReportService

logger = get_logger(__name__)

router = APIRouter()

_STYLE = """
body { font-family: system-ui, sans-serif; margin: 2rem auto; max-width: 960px; color: #1f2933; }
nav a { margin-right: 1rem; }
.cards { display: flex; gap: 1rem; flex-wrap: wrap; }
.card { border: 1px solid #d9e2ec; border-radius: 8px; padding: 1rem 1.5rem; min-width: 140px; }
.card .value { font-size: 1.5rem; font-weight: 600; }
table { border-collapse: collapse; width: 100%; margin-top: 1rem; }
th, td { border: 1px solid #d9e2ec; padding: .4rem .6rem; text-align: right; }
th:first-child, td:first-child { text-align: left; }
th { background: #1f4e79; color: #fff; }
.error { color: #b00020; }
"""


def _money(value) -> str:
    return f"₹{value:,.2f}"


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{escape(title)} - {escape(settings.APP_NAME)}</title>
<style>{_STYLE}</style>
</head>
<body>
<nav><a href="/">Dashboard</a><a href="/history">History</a></nav>
<h1>{escape(title)}</h1>
{body}
</body>
</html>"""


def _cards(totals: AggregateTotals) -> str:
    items = [
        ("Revenue", _money(totals.revenue)),
        ("GST", _money(totals.gst)),
        ("₹125", totals.slabs.count_125),
        ("₹75", totals.slabs.count_75),
        ("₹0", totals.slabs.count_0),
        ("Transactions", totals.rows),
    ]
    cards = "".join(
        f'<div class="card"><div>{escape(label)}</div><div class="value">{escape(str(value))}</div></div>'
        for label, value in items
    )
    return f'<div class="cards">{cards}</div>'


def render_dashboard(totals: AggregateTotals) -> str:
    body = f"""
{_cards(totals)}
<h2>Upload CSV</h2>
<form action="/upload" method="post" enctype="multipart/form-data">
  <input type="file" name="csvfile" accept=".csv,text/csv" required>
  <button type="submit">Upload</button>
</form>
<h2>Undo</h2>
<form action="/reset" method="post" onsubmit="return confirm('Delete every row of the last upload date?');">
  <button type="submit">Clear last upload</button>
</form>
"""
    return _page("Toll collection", body)


def render_history(
    rows: list[HistoryRow],
    period: Period,
    date_from: Optional[date],
    date_to: Optional[date],
    min_date: Optional[date],
    max_date: Optional[date],
) -> str:
    from_value = date_from.isoformat() if date_from else ""
    to_value = date_to.isoformat() if date_to else ""
    options = "".join(
        f'<option value="{p.value}"{" selected" if p is period else ""}>{p.value.title()}</option>'
        for p in Period
    )
    table_rows = "".join(
        "<tr>"
        f"<td>{escape(row.period)}</td>"
        f"<td>{_money(row.totals.revenue)}</td>"
        f"<td>{_money(row.totals.gst)}</td>"
        f"<td>{row.totals.slabs.count_125}</td>"
        f"<td>{row.totals.slabs.count_75}</td>"
        f"<td>{row.totals.slabs.count_0}</td>"
        f"<td>{row.totals.rows}</td>"
        "</tr>"
        for row in rows
    ) or '<tr><td colspan="7">No transactions</td></tr>'

    if min_date and max_date:
        range_text = f"Data available from {min_date.isoformat()} to {max_date.isoformat()}"
    else:
        range_text = "No uploads yet"

    export_query = f"period={period.value}&from={escape(from_value)}&to={escape(to_value)}"
    body = f"""
<p>{range_text}</p>
<form method="get" action="/history">
  <select name="period">{options}</select>
  <input type="date" name="from" value="{escape(from_value)}">
  <input type="date" name="to" value="{escape(to_value)}">
  <button type="submit">Show</button>
  <a href="/api/history/export?{export_query}">Export to Excel</a>
</form>
<table>
<thead><tr><th>Period</th><th>Revenue</th><th>GST</th><th>₹125</th><th>₹75</th><th>₹0</th><th>Total</th></tr></thead>
<tbody>{table_rows}</tbody>
</table>
"""
    return _page("History", body)


def render_error(exc: AppException) -> str:
    body = f'<p class="error">{escape(exc.message)}</p><p><a href="/">Back to the dashboard</a></p>'
    return _page("Upload failed", body)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def dashboard(db: AsyncSession = Depends(get_db)) -> HTMLResponse:
    totals = await ReportService(LedgerStore(db)).aggregate()
    return HTMLResponse(render_dashboard(totals))


@router.post("/upload", include_in_schema=False)
async def upload(
    background_tasks: BackgroundTasks,
    csvfile: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
):
    try:
        await receive_upload(csvfile, db, background_tasks)
    except AppException as exc:
        logger.warning(
            "Dashboard upload rejected",
            extra_data={"upload_filename": csvfile.filename, "error_code": exc.error_code.value, "message": exc.message},
        )
        return HTMLResponse(render_error(exc), status_code=exc.status_code)
    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/reset", include_in_schema=False)
async def reset(db: AsyncSession = Depends(get_db)) -> RedirectResponse:
    await ReportService(LedgerStore(db)).clear_latest_batch()
    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/history", response_class=HTMLResponse, include_in_schema=False)
async def history(
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
) -> HTMLResponse:
    period_value = parse_period(period)
    start = parse_date_param(date_from, "from")
    end = parse_date_param(date_to, "to")

    reports = ReportService(LedgerStore(db))
    rows = await reports.history(period_value, date_from=start, date_to=end)
    min_date, max_date = await reports.date_range()
    return HTMLResponse(render_history(rows, period_value, start, end, min_date, max_date))
