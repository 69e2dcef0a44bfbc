"""
Telegram Webhook Handler - bot front-end for uploads and reports
"""
import io
from pathlib import Path
from typing import Optional

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tollvault.api.dependencies.webhook_auth import verify_telegram_webhook_token
from tollvault.core.config import current_batch_date, settings
from tollvault.core.exceptions import CSVIngestionError, ExternalServiceException
from tollvault.core.logging import get_logger
from tollvault.db.database import get_db, sqlite_database_path
from tollvault.domain.services import telegram_service
from tollvault.domain.services.ingestion_service import IngestionService
from tollvault.domain.services.ledger_store import LedgerStore
from tollvault.domain.services.report_service import ReportService
from tollvault.domain.services.upload_archive import archive_upload

logger = get_logger(__name__)

router = APIRouter()


class TelegramUser(BaseModel):
    id: int
    first_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: Optional[str] = None


class TelegramDocument(BaseModel):
    file_id: str
    file_unique_id: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    chat: TelegramChat
    text: Optional[str] = None
    document: Optional[TelegramDocument] = None
    date: int


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None


async def reply(chat_id: str, text: str) -> None:
    """Background-task send; failures are only logged"""
    try:
        await telegram_service.send_message(chat_id, text)
    except Exception as e:
        logger.error(
            "Telegram reply failed",
            extra_data={"chat_id": chat_id, "error": str(e)},
            exc_info=True,
        )


async def send_backup(chat_id: str, path: Path) -> None:
    try:
        await telegram_service.send_document(chat_id, path, caption=f"Backup {current_batch_date().isoformat()}")
    except Exception as e:
        logger.error(
            "Telegram backup failed",
            extra_data={"chat_id": chat_id, "path": str(path), "error": str(e)},
            exc_info=True,
        )
        await reply(chat_id, "❌ Backup failed.")


def is_authorized_chat(chat_id: str) -> bool:
    """Every chat is allowed while no admin chat is configured"""
    admin_chat_id = settings.TELEGRAM_ADMIN_CHAT_ID
    return admin_chat_id is None or chat_id == admin_chat_id


def parse_command(text: str) -> Optional[str]:
    """'/today@TollVaultBot extra' -> 'today'; None for plain text"""
    text = text.strip()
    if not text.startswith("/"):
        return None
    return text.split()[0][1:].split("@", 1)[0].lower()


async def handle_document(db: AsyncSession, chat_id: str, document: TelegramDocument) -> str:
    """Download, archive and ingest an uploaded CSV; returns the reply text"""
    filename = document.file_name or "telegram_upload.csv"
    if document.file_size is not None and document.file_size > settings.MAX_FILE_SIZE:
        return "❌ File too large."

    try:
        content = await telegram_service.download_file(document.file_id)
    except (ExternalServiceException, httpx.HTTPError) as e:
        logger.warning(
            "Telegram document download failed",
            extra_data={"chat_id": chat_id, "file_id": document.file_id, "error": str(e)},
        )
        return "❌ Download error."

    if len(content) > settings.MAX_FILE_SIZE:
        return "❌ File too large."

    batch_date = current_batch_date()
    try:
        archive_upload(content, filename, batch_date)
    except OSError as e:
        logger.error(
            "Archiving Telegram upload failed",
            extra_data={"upload_filename": filename, "error": str(e)},
            exc_info=True,
        )
        return f"❌ Save error: {e}"

    try:
        summary = await IngestionService(LedgerStore(db)).ingest(
            io.BytesIO(content), batch_date, filename=filename
        )
    except CSVIngestionError as e:
        return f"❌ CSV error: {e.message}"
    except Exception as e:
        # an error response would make Telegram redeliver the same update
        await db.rollback()
        logger.error(
            "Telegram upload ingestion failed",
            extra_data={"upload_filename": filename, "error": str(e)},
            exc_info=True,
        )
        return "❌ Processing error. Try again later."

    return telegram_service.format_upload_report(summary)


async def handle_command(db: AsyncSession, chat_id: str, command: Optional[str],
                         background_tasks: BackgroundTasks) -> Optional[str]:
    """Reply text for a command; None when the reply is sent another way"""
    reports = ReportService(LedgerStore(db))

    if command == "start":
        return telegram_service.WELCOME_TEXT

    if command == "status":
        return telegram_service.format_status_report(await reports.aggregate())

    if command == "today":
        today = current_batch_date()
        return telegram_service.format_today_report(today, await reports.aggregate(on_date=today))

    if command == "backup":
        db_path = sqlite_database_path()
        if db_path is None or not db_path.exists():
            return "❌ Backup is only available for a SQLite database file."
        background_tasks.add_task(send_backup, chat_id, db_path)
        return None

    return telegram_service.UNKNOWN_COMMAND_TEXT


@router.post(
    "/webhook",
    summary="Telegram webhook",
    description="Receives Bot API updates: CSV documents and /start /status /today /backup commands.",
)
async def telegram_webhook(
    update: TelegramUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    _: None = Depends(verify_telegram_webhook_token),
):
    message = update.message
    if message is None:
        return {"ok": True}

    chat_id = str(message.chat.id)
    if not is_authorized_chat(chat_id):
        logger.warning("Telegram message from unauthorized chat", extra_data={"chat_id": chat_id})
        background_tasks.add_task(reply, chat_id, telegram_service.UNAUTHORIZED_TEXT)
        return {"ok": True}

    if message.document is not None:
        text = await handle_document(db, chat_id, message.document)
    elif message.text:
        text = await handle_command(db, chat_id, parse_command(message.text), background_tasks)
    else:
        return {"ok": True}

    if text:
        background_tasks.add_task(reply, chat_id, text)
    return {"ok": True}
