import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger
from app.schemas.telegram import TelegramWebhookResponse
from app.services.description_service import DescriptionService
from app.services.llm import OpenAIProvider
from app.services.media_store import MediaStore
from app.services.telegram_service import TelegramService
from app.services.update_dispatcher import UpdateDispatcher

logger = get_logger("telegram_webhook")

router = APIRouter()


def get_telegram_service() -> TelegramService:
    return TelegramService(
        settings.telegram_bot_token,
        timeout_seconds=settings.http_timeout_seconds,
        message_prefix=settings.message_prefix,
    )


def get_media_store() -> MediaStore:
    return MediaStore(
        settings.supabase_url,
        settings.supabase_service_role_key,
        settings.storage_bucket,
        timeout_seconds=settings.http_timeout_seconds,
    )


def get_description_service() -> DescriptionService:
    provider = OpenAIProvider(api_key=settings.openai_api_key, default_model=settings.openai_model)
    return DescriptionService(provider, timeout_seconds=settings.llm_timeout_seconds)


def get_dispatcher(
    db: Session = Depends(get_db),
    telegram: TelegramService = Depends(get_telegram_service),
    media_store: MediaStore = Depends(get_media_store),
    describer: DescriptionService = Depends(get_description_service),
) -> UpdateDispatcher:
    return UpdateDispatcher(
        db,
        telegram,
        media_store,
        describer,
        fallback_owner_id=settings.owner_fallback_id,
        recent_products_limit=settings.recent_products_limit,
        dedup_ttl_hours=settings.dedup_ttl_hours,
    )


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            return json.loads(raw.decode(enc, errors="replace"))
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


def is_valid_secret(received: Optional[str], expected: Optional[str]) -> bool:
    """No configured secret means every request is accepted."""
    if not expected:
        return True
    return hmac.compare_digest((received or "").encode(), expected.encode())


@router.post("/telegram-webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(
    request: Request,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """
    Handle Telegram webhook updates.

    Always answers 200 so Telegram does not redeliver; the outcome is only
    reported in the body.
    """
    if not is_valid_secret(secret_token, settings.telegram_webhook_secret):
        logger.warning("Rejected webhook call with a wrong secret token")
        return TelegramWebhookResponse(success=False, message="Invalid secret token")

    body = await parse_telegram_update(request)
    if not isinstance(body, dict):
        return TelegramWebhookResponse(success=False, message="Invalid telegram payload")

    logger.debug("Telegram webhook received", extra={"context": {"update_id": body.get("update_id")}})

    try:
        status = await run_in_threadpool(dispatcher.dispatch, body)
    except Exception as e:
        logger.error(f"Telegram webhook error: {e}", exc_info=True)
        return TelegramWebhookResponse(success=True, message="Error handled")

    return TelegramWebhookResponse(success=True, message=status)


# Alias kept for webhooks registered under the old path
@router.post("/webhook/telegram", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook_alias(
    request: Request,
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    return await handle_telegram_webhook(request, dispatcher, secret_token)
