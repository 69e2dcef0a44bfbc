"""
Ledger Store - persistent set of toll transactions keyed by enrolment number.

Inserts of an already-known key are silently skipped; the database UNIQUE
constraint decides races between concurrent uploads.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tollvault.core.logging import get_logger
from tollvault.db.models.transaction import Transaction
from tollvault.domain.services.aggregator import AggregateTotals, Slab, SlabCounts, to_decimal
from tollvault.domain.services.record_decoder import TransactionRecord

logger = get_logger(__name__)


class Period(str, Enum):
    """Calendar bucket used to group history"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    def key(self, day: Optional[date]) -> str:
        """Sortable bucket key: 2024-01-10, 2024-W02 (ISO week), 2024-01, 2024"""
        if day is None:
            return ""
        if self is Period.WEEK:
            iso_year, iso_week, _ = day.isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        if self is Period.MONTH:
            return f"{day.year}-{day.month:02d}"
        if self is Period.YEAR:
            return f"{day.year}"
        return day.isoformat()


@dataclass
class HistoryRow:
    period: str
    totals: AggregateTotals = field(default_factory=AggregateTotals)


def _slab_count(slab: Slab):
    return func.sum(case((Transaction.total_amount_charged == slab.value, 1), else_=0))


def _date_filters(
    on_date: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list:
    filters = []
    if on_date is not None:
        filters.append(Transaction.upload_date == on_date)
    if date_from is not None:
        filters.append(Transaction.upload_date >= date_from)
    if date_to is not None:
        filters.append(Transaction.upload_date <= date_to)
    return filters


class LedgerStore:
    """Store operations over one AsyncSession"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert_statement(self):
        if self.db.get_bind().dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        return insert(Transaction)

    async def insert_if_absent(self, record: TransactionRecord) -> bool:
        """
        Persist ``record`` unless its key is already stored.

        Commits immediately; returns True only when a new row was written.
        Amounts are written as decoded; the decoder keeps them inside the
        column range, so reads return the value the caller summarized.
        """
        stmt = (
            self._insert_statement()
            .values(
                enrolment_no_date=record.enrolment_no_date,
                total_amount_charged=record.total_amount_charged,
                gst_amount=record.gst_amount,
                operator_id=record.operator_id,
                resident_name=record.resident_name,
                upload_date=record.upload_date,
            )
            .on_conflict_do_nothing(index_elements=[Transaction.enrolment_no_date])
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def scan_all(self) -> list[tuple[Decimal, Decimal]]:
        """(amount, gst) of every stored row, unordered"""
        return await self.scan_filtered()

    async def scan_filtered(
        self,
        on_date: Optional[date] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[tuple[Decimal, Decimal]]:
        """(amount, gst) of rows whose upload date matches; bounds are inclusive"""
        result = await self.db.execute(
            select(Transaction.total_amount_charged, Transaction.gst_amount)
            .where(*_date_filters(on_date, date_from, date_to))
        )
        return [(to_decimal(amount), to_decimal(gst)) for amount, gst in result.all()]

    async def group_by_period(
        self,
        period: Period,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[HistoryRow]:
        """
        Totals per calendar bucket, most recent first.

        The database aggregates per upload day; days are then rolled up into
        weeks, months or years here so bucket keys do not depend on the SQL
        dialect.
        """
        result = await self.db.execute(
            select(
                Transaction.upload_date,
                func.sum(Transaction.total_amount_charged),
                func.sum(Transaction.gst_amount),
                _slab_count(Slab.SLAB_125),
                _slab_count(Slab.SLAB_75),
                _slab_count(Slab.SLAB_0),
                func.count(Transaction.id),
            )
            .where(*_date_filters(date_from=date_from, date_to=date_to))
            .group_by(Transaction.upload_date)
        )

        buckets: dict[str, HistoryRow] = {}
        for day, revenue, gst, c125, c75, c0, total in result.all():
            key = period.key(day)
            row = buckets.setdefault(key, HistoryRow(period=key))
            row.totals.merge(AggregateTotals(
                revenue=to_decimal(revenue),
                gst=to_decimal(gst),
                slabs=SlabCounts(count_125=int(c125 or 0), count_75=int(c75 or 0), count_0=int(c0 or 0)),
                rows=int(total),
            ))

        return [buckets[key] for key in sorted(buckets, reverse=True)]

    async def delete_latest_batch(self) -> tuple[Optional[date], int]:
        """
        Remove every row of the most recent upload date.

        Returns (cleared date, deleted rows); (None, 0) on an empty store.
        """
        latest = await self.db.scalar(select(func.max(Transaction.upload_date)))
        if latest is None:
            return None, 0

        result = await self.db.execute(
            delete(Transaction).where(Transaction.upload_date == latest)
        )
        await self.db.commit()
        return latest, result.rowcount

    async def min_max_dates(self) -> tuple[Optional[date], Optional[date]]:
        result = await self.db.execute(
            select(func.min(Transaction.upload_date), func.max(Transaction.upload_date))
        )
        min_date, max_date = result.one()
        return min_date, max_date

    async def count(self) -> int:
        return await self.db.scalar(select(func.count(Transaction.id))) or 0
