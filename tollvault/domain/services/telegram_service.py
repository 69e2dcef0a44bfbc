"""
Telegram Service - report texts and Bot API calls (sendMessage, sendDocument, getFile)
"""
from datetime import date, datetime
from decimal import Decimal
from html import escape
from pathlib import Path
from typing import Optional

import httpx
from fastapi.concurrency import run_in_threadpool

from tollvault.core.circuit_breaker import get_telegram_circuit_breaker
from tollvault.core.config import local_now, settings
from tollvault.core.exceptions import TelegramError
from tollvault.core.logging import get_logger
from tollvault.domain.services.aggregator import AggregateTotals, SlabCounts
from tollvault.domain.services.ingestion_service import UploadSummary

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
_DIVIDER = "━━━━━━━━━━━━━━━━━━━━"

WELCOME_TEXT = (
    "👋 Welcome to <b>TollVault</b>!\n\n"
    "Send a CSV file or use:\n"
    "/status - All-time report\n"
    "/today - Today's report\n"
    "/backup - Download database"
)
UNKNOWN_COMMAND_TEXT = "Unknown command. Use /status /today /backup."
UNAUTHORIZED_TEXT = "Unauthorized."


# ==================== Formatting ====================


def format_money(value: Decimal) -> str:
    return f"₹{value:,.2f}"


def _slab_lines(slabs: SlabCounts) -> list[str]:
    return [
        f"   ₹125: <b>{slabs.count_125}</b>",
        f"   ₹75:  <b>{slabs.count_75}</b>",
        f"   ₹0:   <b>{slabs.count_0}</b>",
    ]


def format_upload_report(summary: UploadSummary, now: Optional[datetime] = None) -> str:
    now = now or local_now()
    lines = [
        "📥 <b>CSV Upload Report</b>",
        _DIVIDER,
        f"📄 File: <code>{escape(summary.filename or '-')}</code>",
        f"📅 Date: {now.strftime('%d %b %Y, %I:%M %p')}",
        _DIVIDER,
        "📊 <b>Summary</b>",
        f"   Rows: <b>{summary.rows}</b>",
        f"   New: <b>{summary.inserted}</b>",
        f"   💰 Revenue: <b>{format_money(summary.revenue)}</b>",
        f"   🧾 GST: <b>{format_money(summary.gst)}</b>",
        _DIVIDER,
        "📈 <b>Slab Breakdown</b>",
        *_slab_lines(summary.slabs),
        _DIVIDER,
        "✅ Processed successfully",
    ]
    return "\n".join(lines)


def format_status_report(totals: AggregateTotals) -> str:
    lines = [
        "📊 <b>All-Time Report</b>",
        _DIVIDER,
        f"💰 Revenue: <b>{format_money(totals.revenue)}</b>",
        f"🧾 GST: <b>{format_money(totals.gst)}</b>",
        _DIVIDER,
        "📈 <b>Slabs</b>",
        *_slab_lines(totals.slabs),
    ]
    return "\n".join(lines)


def format_today_report(day: date, totals: AggregateTotals) -> str:
    lines = [
        f"📅 <b>Today ({day.isoformat()})</b>",
        _DIVIDER,
        f"💰 Revenue: <b>{format_money(totals.revenue)}</b>",
        f"🧾 GST: <b>{format_money(totals.gst)}</b>",
        f"📋 Transactions: <b>{totals.rows}</b>",
        _DIVIDER,
        "📈 <b>Slabs</b>",
        *_slab_lines(totals.slabs),
    ]
    return "\n".join(lines)


# ==================== Bot API ====================


def _bot_url(method: str) -> str:
    return f"{TELEGRAM_API_BASE}/bot{settings.TELEGRAM_BOT_TOKEN}/{method}"


async def send_message(chat_id: str, text: str) -> None:
    """
    sendMessage with HTML parse mode.

    Raises:
        TelegramError: non-200 response
        CircuitBreakerOpenError: too many recent failures
    """
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("Telegram bot token not configured")
        return

    payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

    async def _send():
        async with httpx.AsyncClient() as client:
            response = await client.post(_bot_url("sendMessage"), json=payload, timeout=30.0)
            if response.status_code != 200:
                raise TelegramError.from_response("sendMessage", response)

    await get_telegram_circuit_breaker().execute(_send)


async def send_document(chat_id: str, path: Path, caption: Optional[str] = None) -> None:
    """Upload a local file with sendDocument"""
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("Telegram bot token not configured")
        return

    content = await run_in_threadpool(Path(path).read_bytes)
    data = {"chat_id": chat_id}
    if caption:
        data["caption"] = caption

    async def _send():
        async with httpx.AsyncClient() as client:
            response = await client.post(
                _bot_url("sendDocument"),
                data=data,
                files={"document": (Path(path).name, content, "application/octet-stream")},
                timeout=60.0,
            )
            if response.status_code != 200:
                raise TelegramError.from_response("sendDocument", response)

    await get_telegram_circuit_breaker().execute(_send)
    logger.info(
        "Telegram document sent",
        extra_data={"chat_id": chat_id, "document": Path(path).name, "size_bytes": len(content)},
    )


async def download_file(file_id: str) -> bytes:
    """getFile, then fetch the file body from the file endpoint"""
    if not settings.TELEGRAM_BOT_TOKEN:
        raise TelegramError("bot token not configured", details={"file_id": file_id})

    async def _fetch() -> bytes:
        async with httpx.AsyncClient() as client:
            response = await client.post(_bot_url("getFile"), json={"file_id": file_id}, timeout=30.0)
            if response.status_code != 200:
                raise TelegramError.from_response("getFile", response)

            payload = response.json()
            file_path = (payload.get("result") or {}).get("file_path")
            if not payload.get("ok") or not file_path:
                raise TelegramError(
                    "getFile returned no file_path",
                    details={"file_id": file_id, "response": payload},
                )

            file_url = f"{TELEGRAM_API_BASE}/file/bot{settings.TELEGRAM_BOT_TOKEN}/{file_path}"
            file_response = await client.get(file_url, timeout=60.0)
            if file_response.status_code != 200:
                raise TelegramError.from_response("downloadFile", file_response)
            return file_response.content

    return await get_telegram_circuit_breaker().execute(_fetch)


async def send_upload_report(summary: UploadSummary) -> bool:
    """
    Post the upload report to the admin chat.

    Never raises; returns False when nothing was delivered.
    """
    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_ADMIN_CHAT_ID:
        logger.debug("Upload report skipped, Telegram not configured")
        return False

    try:
        await send_message(settings.TELEGRAM_ADMIN_CHAT_ID, format_upload_report(summary))
    except Exception as e:
        logger.error(
            "Upload report delivery failed",
            extra_data={
                "upload_filename": summary.filename,
                "batch_date": summary.batch_date.isoformat(),
                "error": str(e),
            },
            exc_info=True,
        )
        return False

    logger.info(
        "Upload report delivered",
        extra_data={"upload_filename": summary.filename, "rows": summary.rows},
    )
    return True
