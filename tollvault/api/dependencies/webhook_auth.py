"""
Inbound Telegram webhook verification.

Telegram sends ``X-Telegram-Bot-Api-Secret-Token`` with every webhook call
when ``setWebhook`` was given a ``secret_token``; this dependency checks it
against ``TELEGRAM_WEBHOOK_SECRET_TOKEN``.
"""
import hmac

from fastapi import Header, HTTPException, status

from tollvault.core.config import settings
from tollvault.core.logging import get_logger

logger = get_logger(__name__)


async def verify_telegram_webhook_token(
    x_telegram_bot_api_secret_token: str | None = Header(None),
) -> None:
    """
    - no secret configured: accept (a startup warning is already emitted)
    - header missing or wrong: 403
    """
    expected = settings.TELEGRAM_WEBHOOK_SECRET_TOKEN
    if not expected:
        return

    if not x_telegram_bot_api_secret_token:
        logger.warning("Webhook request without X-Telegram-Bot-Api-Secret-Token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing webhook secret token",
        )

    if not hmac.compare_digest(x_telegram_bot_api_secret_token, expected):
        logger.warning("Webhook request with a wrong secret token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook secret token",
        )
