"""
Shared schemas and query parameter parsing for the HTTP routes
"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from tollvault.core.exceptions import ValidationException
from tollvault.domain.services.aggregator import AggregateTotals, SlabCounts
from tollvault.domain.services.ingestion_service import UploadSummary
from tollvault.domain.services.ledger_store import HistoryRow, Period


def parse_date_param(value: Optional[str], param_name: str) -> Optional[date]:
    """YYYY-MM-DD query value -> date; empty -> None; anything else -> 400"""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationException(
            f"Invalid date in '{param_name}', expected YYYY-MM-DD",
            field=param_name,
        )


def parse_period(value: Optional[str]) -> Period:
    """Defaults to day; unknown values -> 400"""
    if not value:
        return Period.DAY
    try:
        return Period(value.strip().lower())
    except ValueError:
        allowed = ", ".join(p.value for p in Period)
        raise ValidationException(
            f"Invalid period '{value}', expected one of: {allowed}",
            field="period",
        )


# ==================== Responses ====================


class SlabCountsResponse(BaseModel):
    count_125: int
    count_75: int
    count_0: int

    @classmethod
    def from_counts(cls, slabs: SlabCounts) -> "SlabCountsResponse":
        return cls(**slabs.to_dict())


class AnalyticsResponse(BaseModel):
    """Totals for the whole store or one upload date"""
    revenue: float
    gst: float
    slabs: SlabCountsResponse
    rows: int
    upload_date: Optional[str] = None

    @classmethod
    def from_totals(cls, totals: AggregateTotals, on_date: Optional[date] = None) -> "AnalyticsResponse":
        return cls(
            revenue=float(totals.revenue),
            gst=float(totals.gst),
            slabs=SlabCountsResponse.from_counts(totals.slabs),
            rows=totals.rows,
            upload_date=on_date.isoformat() if on_date else None,
        )


class HistoryRowResponse(BaseModel):
    period: str
    revenue: float
    gst: float
    count_125: int
    count_75: int
    count_0: int
    total: int

    @classmethod
    def from_row(cls, row: HistoryRow) -> "HistoryRowResponse":
        return cls(
            period=row.period,
            revenue=float(row.totals.revenue),
            gst=float(row.totals.gst),
            total=row.totals.rows,
            **row.totals.slabs.to_dict(),
        )


class UploadSummaryResponse(BaseModel):
    filename: str
    batch_date: str
    rows: int
    inserted: int
    revenue: float
    gst: float
    slabs: SlabCountsResponse

    @classmethod
    def from_summary(cls, summary: UploadSummary) -> "UploadSummaryResponse":
        return cls(
            filename=summary.filename,
            batch_date=summary.batch_date.isoformat(),
            rows=summary.rows,
            inserted=summary.inserted,
            revenue=float(summary.revenue),
            gst=float(summary.gst),
            slabs=SlabCountsResponse.from_counts(summary.slabs),
        )


class ClearBatchResponse(BaseModel):
    cleared_date: Optional[str]
    deleted_rows: int
