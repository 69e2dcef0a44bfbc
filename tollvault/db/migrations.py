"""
Store-open schema management - single source of truth for schema changes.

Used by application startup (main.py) and by the Celery worker. Every step is
idempotent, so running it on each start is safe.
"""
from datetime import date

from sqlalchemy import inspect, text, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from tollvault.core.config import current_batch_date
from tollvault.core.logging import get_logger
from tollvault.db.database import Base
from tollvault.db.models.transaction import Transaction

logger = get_logger(__name__)


def _column_names(sync_conn, table_name: str) -> set[str]:
    return {column["name"] for column in inspect(sync_conn).get_columns(table_name)}


async def add_upload_date_column(conn: AsyncConnection, backfill_date: date) -> bool:
    """
    Upgrade a transactions table created before upload batches existed.

    Adds ``upload_date`` and stamps every pre-existing row with
    ``backfill_date``. Returns True when the column had to be added.
    """
    columns = await conn.run_sync(_column_names, Transaction.__tablename__)
    if "upload_date" in columns:
        return False

    await conn.execute(text("ALTER TABLE transactions ADD COLUMN upload_date DATE"))
    result = await conn.execute(
        update(Transaction.__table__)
        .where(Transaction.__table__.c.upload_date.is_(None))
        .values(upload_date=backfill_date)
    )
    logger.info(
        "Migration: added upload_date column",
        extra_data={"backfilled_rows": result.rowcount, "backfill_date": backfill_date.isoformat()},
    )
    return True


async def ensure_upload_date_index(conn: AsyncConnection) -> None:
    """create_all skips indexes of tables that already exist"""
    await conn.execute(text(
        "CREATE INDEX IF NOT EXISTS ix_transactions_upload_date ON transactions (upload_date)"
    ))


async def init_ledger_schema(engine: AsyncEngine, backfill_date: date | None = None) -> bool:
    """
    Create missing tables and upgrade legacy ones in a single transaction.

    Returns True when a legacy table was upgraded.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        upgraded = await add_upload_date_column(conn, backfill_date or current_batch_date())
        await ensure_upload_date_index(conn)
    return upgraded
