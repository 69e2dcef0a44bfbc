"""
Tests for the ledger store (insert-if-absent, scans, period grouping, undo)
"""
from datetime import date
from decimal import Decimal

import pytest

from tollvault.domain.services.ledger_store import LedgerStore, Period
from tollvault.domain.services.record_decoder import TransactionRecord


def _record(key: str, amount: str = "125", gst: str = "22.5", upload_date: date = date(2024, 1, 10)) -> TransactionRecord:
    return TransactionRecord(
        enrolment_no_date=key,
        total_amount_charged=Decimal(amount),
        gst_amount=Decimal(gst),
        operator_id="op1",
        resident_name="Asha",
        upload_date=upload_date,
    )


async def _seed(store: LedgerStore, *records: TransactionRecord) -> None:
    for record in records:
        await store.insert_if_absent(record)


class TestPeriodKey:

    @pytest.mark.unit
    def test_day_month_year(self):
        day = date(2024, 1, 10)
        assert Period.DAY.key(day) == "2024-01-10"
        assert Period.MONTH.key(day) == "2024-01"
        assert Period.YEAR.key(day) == "2024"

    @pytest.mark.unit
    def test_iso_week(self):
        assert Period.WEEK.key(date(2024, 1, 10)) == "2024-W02"
        # ISO week 1 of 2025 starts on Monday 2024-12-30
        assert Period.WEEK.key(date(2024, 12, 31)) == "2025-W01"

    @pytest.mark.unit
    def test_missing_date(self):
        assert Period.DAY.key(None) == ""


class TestInsertIfAbsent:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_key_inserted(self, store: LedgerStore):
        assert await store.insert_if_absent(_record("E1")) is True
        assert await store.count() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_key_skipped(self, store: LedgerStore):
        assert await store.insert_if_absent(_record("E1", amount="125")) is True
        assert await store.insert_if_absent(_record("E1", amount="75", upload_date=date(2024, 2, 1))) is False

        assert await store.count() == 1
        # the first write wins
        pairs = await store.scan_all()
        assert pairs == [(Decimal("125"), Decimal("22.5"))]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sub_cent_amounts_stored_exactly(self, store: LedgerStore):
        await store.insert_if_absent(_record("E1", amount="124.999", gst="0.0045"))
        [(amount, gst)] = await store.scan_all()
        assert amount == Decimal("124.999")
        assert gst == Decimal("0.0045")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_largest_amount_round_trips(self, store: LedgerStore):
        await store.insert_if_absent(_record("E1", amount="99999999999.9999", gst="12345678901.2345"))
        [(amount, gst)] = await store.scan_all()
        assert amount == Decimal("99999999999.9999")
        assert gst == Decimal("12345678901.2345")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_near_slab_amount_not_counted_as_slab(self, store: LedgerStore):
        await store.insert_if_absent(_record("E1", amount="124.999", gst="0"))
        [row] = await store.group_by_period(Period.DAY)
        assert row.totals.slabs.to_dict() == {"count_125": 0, "count_75": 0, "count_0": 0}
        assert row.totals.revenue == Decimal("124.999")


class TestScans:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scan_filtered_by_date_and_range(self, store: LedgerStore):
        await _seed(
            store,
            _record("E1", "125", upload_date=date(2024, 1, 10)),
            _record("E2", "75", upload_date=date(2024, 1, 11)),
            _record("E3", "0", "0", upload_date=date(2024, 1, 12)),
        )

        assert len(await store.scan_all()) == 3
        on_day = await store.scan_filtered(on_date=date(2024, 1, 11))
        assert [amount for amount, _ in on_day] == [Decimal("75")]

        in_range = await store.scan_filtered(date_from=date(2024, 1, 11), date_to=date(2024, 1, 12))
        assert sorted(amount for amount, _ in in_range) == [Decimal("0"), Decimal("75")]

        assert await store.scan_filtered(on_date=date(2023, 1, 1)) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_min_max_dates(self, store: LedgerStore):
        assert await store.min_max_dates() == (None, None)
        await _seed(
            store,
            _record("E1", upload_date=date(2024, 3, 1)),
            _record("E2", upload_date=date(2024, 1, 5)),
        )
        assert await store.min_max_dates() == (date(2024, 1, 5), date(2024, 3, 1))


class TestGroupByPeriod:

    @pytest.fixture
    async def seeded(self, store: LedgerStore) -> LedgerStore:
        await _seed(
            store,
            _record("E1", "125", "22.5", date(2024, 1, 10)),
            _record("E2", "75", "13.5", date(2024, 1, 10)),
            _record("E3", "0", "0", date(2024, 1, 11)),
            _record("E4", "50", "9", date(2024, 2, 1)),
            _record("E5", "125", "22.5", date(2023, 12, 31)),
        )
        return store

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_day_rows_descending(self, seeded: LedgerStore):
        rows = await seeded.group_by_period(Period.DAY)

        assert [row.period for row in rows] == ["2024-02-01", "2024-01-11", "2024-01-10", "2023-12-31"]
        jan_10 = rows[2].totals
        assert jan_10.revenue == Decimal("200")
        assert jan_10.gst == Decimal("36")
        assert jan_10.rows == 2
        assert (jan_10.slabs.count_125, jan_10.slabs.count_75, jan_10.slabs.count_0) == (1, 1, 0)
        assert rows[0].totals.slabs.to_dict() == {"count_125": 0, "count_75": 0, "count_0": 0}
        assert rows[0].totals.rows == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_month_and_year_buckets(self, seeded: LedgerStore):
        months = await seeded.group_by_period(Period.MONTH)
        assert [row.period for row in months] == ["2024-02", "2024-01", "2023-12"]
        assert months[1].totals.rows == 3

        years = await seeded.group_by_period(Period.YEAR)
        assert [row.period for row in years] == ["2024", "2023"]
        assert years[0].totals.revenue == Decimal("250")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_week_buckets(self, seeded: LedgerStore):
        weeks = await seeded.group_by_period(Period.WEEK)
        # 2024-01-10 and 2024-01-11 share ISO week 2; 2023-12-31 is week 52 of 2023
        assert [row.period for row in weeks] == ["2024-W05", "2024-W02", "2023-W52"]
        assert weeks[1].totals.rows == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("period", list(Period))
    async def test_buckets_cover_every_row(self, seeded: LedgerStore, period: Period):
        rows = await seeded.group_by_period(period)
        assert sum(row.totals.rows for row in rows) == 5
        assert sum((row.totals.revenue for row in rows), Decimal("0")) == Decimal("375")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_date_range_filter(self, seeded: LedgerStore):
        rows = await seeded.group_by_period(Period.DAY, date_from=date(2024, 1, 10), date_to=date(2024, 1, 11))
        assert [row.period for row in rows] == ["2024-01-11", "2024-01-10"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_store(self, store: LedgerStore):
        assert await store.group_by_period(Period.DAY) == []


class TestDeleteLatestBatch:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_removes_only_latest_date(self, store: LedgerStore):
        await _seed(
            store,
            _record("E1", upload_date=date(2024, 1, 10)),
            _record("E2", upload_date=date(2024, 1, 11)),
            _record("E3", upload_date=date(2024, 1, 11)),
        )

        cleared, deleted = await store.delete_latest_batch()

        assert cleared == date(2024, 1, 11)
        assert deleted == 2
        assert await store.count() == 1
        assert await store.min_max_dates() == (date(2024, 1, 10), date(2024, 1, 10))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_store_is_noop(self, store: LedgerStore):
        assert await store.delete_latest_batch() == (None, 0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cleared_keys_can_be_reinserted(self, store: LedgerStore):
        await store.insert_if_absent(_record("E1"))
        await store.delete_latest_batch()
        assert await store.insert_if_absent(_record("E1")) is True
