"""
Report Service - read side used by the dashboard, the JSON API and the bot
"""
from datetime import date
from typing import Optional

from tollvault.core.logging import get_logger
from tollvault.domain.services.aggregator import AggregateTotals, aggregate
from tollvault.domain.services.ledger_store import HistoryRow, LedgerStore, Period

logger = get_logger(__name__)


class ReportService:
    """Aggregates and history over a LedgerStore"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def aggregate(
        self,
        on_date: Optional[date] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> AggregateTotals:
        """Totals for every stored row, or for those matching the date filter"""
        if on_date is None and date_from is None and date_to is None:
            pairs = await self.store.scan_all()
        else:
            pairs = await self.store.scan_filtered(on_date=on_date, date_from=date_from, date_to=date_to)
        return aggregate(pairs)

    async def history(
        self,
        period: Period = Period.DAY,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[HistoryRow]:
        return await self.store.group_by_period(period, date_from=date_from, date_to=date_to)

    async def date_range(self) -> tuple[Optional[date], Optional[date]]:
        return await self.store.min_max_dates()

    async def clear_latest_batch(self) -> tuple[Optional[date], int]:
        """Undo the most recent upload day"""
        cleared_date, deleted = await self.store.delete_latest_batch()
        if cleared_date is None:
            logger.info("Clear last upload requested on an empty store")
        else:
            logger.info(
                "Cleared last upload",
                extra_data={"upload_date": cleared_date.isoformat(), "deleted_rows": deleted},
            )
        return cleared_date, deleted
