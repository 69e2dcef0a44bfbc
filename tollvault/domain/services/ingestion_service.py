"""
Ingestion Service - CSV byte stream -> persisted transactions -> upload summary.

The summary describes the rows seen in the file, duplicates included; only
``inserted`` reflects what was newly written. There is no rollback: rows
persisted before a mid-file read error stay in the store.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, BinaryIO, TextIO, Union

from tollvault.core.logging import get_logger, log_async_operation
from tollvault.domain.services.aggregator import AggregateTotals, SlabCounts
from tollvault.domain.services.ledger_store import LedgerStore
from tollvault.domain.services.record_decoder import decode_transactions

logger = get_logger(__name__)


@dataclass
class UploadSummary:
    filename: str
    batch_date: date
    totals: AggregateTotals = field(default_factory=AggregateTotals)
    inserted: int = 0

    @property
    def rows(self) -> int:
        return self.totals.rows

    @property
    def revenue(self) -> Decimal:
        return self.totals.revenue

    @property
    def gst(self) -> Decimal:
        return self.totals.gst

    @property
    def slabs(self) -> SlabCounts:
        return self.totals.slabs

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form, used as the Celery task payload"""
        return {
            "filename": self.filename,
            "batch_date": self.batch_date.isoformat(),
            "rows": self.rows,
            "inserted": self.inserted,
            "revenue": str(self.revenue),
            "gst": str(self.gst),
            "slabs": self.slabs.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadSummary":
        slabs = data.get("slabs") or {}
        return cls(
            filename=data.get("filename", ""),
            batch_date=date.fromisoformat(data["batch_date"]),
            totals=AggregateTotals(
                revenue=Decimal(data.get("revenue", "0")),
                gst=Decimal(data.get("gst", "0")),
                slabs=SlabCounts(
                    count_125=int(slabs.get("count_125", 0)),
                    count_75=int(slabs.get("count_75", 0)),
                    count_0=int(slabs.get("count_0", 0)),
                ),
                rows=int(data.get("rows", 0)),
            ),
            inserted=int(data.get("inserted", 0)),
        )


class IngestionService:
    """Runs one CSV document through decoder, store and aggregator"""

    def __init__(self, store: LedgerStore):
        self.store = store

    @log_async_operation("csv_ingestion")
    async def ingest(
        self,
        stream: Union[BinaryIO, TextIO],
        upload_date: date,
        filename: str = "",
    ) -> UploadSummary:
        """
        Decode ``stream`` and store each row with ``upload_date``.

        Raises:
            MissingColumnError: before anything is stored
            StreamReadError: mid-file; earlier rows remain stored
        """
        summary = UploadSummary(filename=filename, batch_date=upload_date)

        for record in decode_transactions(stream, upload_date):
            if await self.store.insert_if_absent(record):
                summary.inserted += 1
            summary.totals.add(record.total_amount_charged, record.gst_amount)

        logger.info(
            "CSV upload ingested",
            extra_data={
                "upload_filename": filename,
                "batch_date": upload_date.isoformat(),
                "rows": summary.rows,
                "inserted": summary.inserted,
                "duplicates": summary.rows - summary.inserted,
                "revenue": str(summary.revenue),
                "gst": str(summary.gst),
            },
        )
        return summary
