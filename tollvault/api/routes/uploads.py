"""
Uploads - CSV ingestion over HTTP and undo of the latest batch
"""
import io

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from tollvault.api.routes.schemas import ClearBatchResponse, UploadSummaryResponse
from tollvault.core.config import current_batch_date, settings
from tollvault.core.exceptions import PayloadTooLargeError
from tollvault.core.logging import get_logger
from tollvault.db.database import get_db
from tollvault.domain.services.ingestion_service import IngestionService, UploadSummary
from tollvault.domain.services.ledger_store import LedgerStore
from tollvault.domain.services.report_service import ReportService
from tollvault.domain.services.upload_archive import archive_upload, safe_filename
from tollvault.workers.tasks import schedule_upload_report

logger = get_logger(__name__)

router = APIRouter()


async def receive_upload(
    file: UploadFile,
    db: AsyncSession,
    background_tasks: BackgroundTasks,
) -> UploadSummary:
    """
    Archive and ingest one uploaded CSV with today's batch date, then queue
    the upload report.

    Raises:
        PayloadTooLargeError: file over MAX_FILE_SIZE, nothing stored
        MissingColumnError / StreamReadError: from the decoder
    """
    limit = settings.MAX_FILE_SIZE
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise PayloadTooLargeError(len(content), limit)

    filename = safe_filename(file.filename)
    batch_date = current_batch_date()
    archive_upload(content, filename, batch_date)

    summary = await IngestionService(LedgerStore(db)).ingest(
        io.BytesIO(content), batch_date, filename=filename
    )
    schedule_upload_report(summary, background_tasks)
    return summary


@router.post(
    "/uploads",
    response_model=UploadSummaryResponse,
    summary="Upload a transactions CSV",
    description="Multipart field `csvfile`. Returns the summary of the rows in the file, duplicates included.",
)
async def upload_csv(
    background_tasks: BackgroundTasks,
    csvfile: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
) -> UploadSummaryResponse:
    summary = await receive_upload(csvfile, db, background_tasks)
    return UploadSummaryResponse.from_summary(summary)


@router.delete(
    "/batches/latest",
    response_model=ClearBatchResponse,
    summary="Clear the last upload",
    description="Deletes every row stored under the most recent upload date.",
)
async def clear_latest_batch(db: AsyncSession = Depends(get_db)) -> ClearBatchResponse:
    cleared_date, deleted = await ReportService(LedgerStore(db)).clear_latest_batch()
    return ClearBatchResponse(
        cleared_date=cleared_date.isoformat() if cleared_date else None,
        deleted_rows=deleted,
    )
