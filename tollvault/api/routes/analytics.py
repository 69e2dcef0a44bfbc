"""
Analytics - JSON totals, period history and the Excel export
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from tollvault.api.routes.schemas import (
    AnalyticsResponse,
    HistoryRowResponse,
    parse_date_param,
    parse_period,
)
from tollvault.core.logging import get_logger
from tollvault.db.database import get_db
from tollvault.domain.services.export_service import generate_history_report_excel
from tollvault.domain.services.ledger_store import LedgerStore
from tollvault.domain.services.report_service import ReportService

logger = get_logger(__name__)

router = APIRouter()

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get(
    "/analytics",
    response_model=AnalyticsResponse,
    summary="Revenue, GST and slab totals",
    description="All stored transactions, or only those uploaded on `date` (YYYY-MM-DD).",
)
async def get_analytics(
    db: AsyncSession = Depends(get_db),
    date: Optional[str] = Query(None, description="Upload date (YYYY-MM-DD)"),
) -> AnalyticsResponse:
    on_date = parse_date_param(date, "date")
    totals = await ReportService(LedgerStore(db)).aggregate(on_date=on_date)
    return AnalyticsResponse.from_totals(totals, on_date)


@router.get(
    "/history",
    response_model=List[HistoryRowResponse],
    summary="Totals per period",
    description="Grouped by day, week (ISO), month or year of the upload date, most recent first.",
)
async def get_history(
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None, description="day | week | month | year"),
    date_from: Optional[str] = Query(None, alias="from", description="First upload date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(None, alias="to", description="Last upload date (YYYY-MM-DD)"),
) -> List[HistoryRowResponse]:
    rows = await ReportService(LedgerStore(db)).history(
        parse_period(period),
        date_from=parse_date_param(date_from, "from"),
        date_to=parse_date_param(date_to, "to"),
    )
    return [HistoryRowResponse.from_row(row) for row in rows]


@router.get(
    "/history/export",
    summary="Export history to Excel",
    responses={
        200: {"description": "Excel file", "content": {_XLSX_MEDIA_TYPE: {}}},
    },
)
async def export_history_xlsx(
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None, description="day | week | month | year"),
    date_from: Optional[str] = Query(None, alias="from", description="First upload date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(None, alias="to", description="Last upload date (YYYY-MM-DD)"),
) -> Response:
    period_value = parse_period(period)
    start = parse_date_param(date_from, "from")
    end = parse_date_param(date_to, "to")

    rows = await ReportService(LedgerStore(db)).history(period_value, date_from=start, date_to=end)
    xlsx_bytes = generate_history_report_excel(rows, period_value, start, end)

    filename = f"history_{period_value.value}.xlsx"
    logger.info(
        "History exported to Excel",
        extra_data={"period": period_value.value, "rows": len(rows)},
    )
    return Response(
        content=xlsx_bytes,
        media_type=_XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
