import asyncio
import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from bantuanku_bot.config import settings
from bantuanku_bot.database import SessionLocal
from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.schemas.whatsapp import GowaWebhookRequest
from bantuanku_bot.services.catalog_service import CatalogService
from bantuanku_bot.services.conversation_service import ConversationService, IncomingMessage
from bantuanku_bot.services.dedup_service import get_redis_client, is_duplicate_message_id

logger = get_logger("whatsapp_webhook")

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

SIGNATURE_HEADER = "X-Hub-Signature-256"
BOT_ENABLED_SETTING = "whatsapp_bot_enabled"


def _ok() -> PlainTextResponse:
    return PlainTextResponse("OK", status_code=200)


def verify_signature(raw_body: bytes, provided: Optional[str], secret: Optional[str]) -> bool:
    """HMAC-SHA256 of the raw body, sent as `sha256=<hex>`. No secret means no check."""
    if not secret:
        return True
    if not provided:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    provided = provided.split("=", 1)[1] if provided.startswith("sha256=") else provided
    return hmac.compare_digest(expected, provided.strip().lower())


def is_bot_enabled() -> bool:
    """Env flag must be on; a `whatsapp_bot_enabled` setting row, when present, can switch the bot off."""
    if not settings.bot_enabled:
        return False
    db = SessionLocal()
    try:
        value = CatalogService(db).get_setting(BOT_ENABLED_SETTING)
    finally:
        db.close()
    return value is None or value.strip().lower() == "true"


async def _process_message(conversations: ConversationService, message: IncomingMessage) -> None:
    try:
        await conversations.handle(message)
    except Exception as e:
        logger.error(
            "WhatsApp message processing failed",
            extra={"context": {"phone": message.phone, "message_id": message.message_id, "error": str(e)}},
            exc_info=True,
        )


@router.post("/webhook")
async def whatsapp_webhook(request: Request, background_tasks: BackgroundTasks):
    """Receive GOWA events. Always acknowledges with plain `OK`."""
    raw_body = await request.body()

    if not verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER), settings.whatsapp_webhook_secret):
        logger.warning("Invalid webhook signature", extra={"context": {"client": request.client.host if request.client else None}})
        return _ok()

    try:
        event = GowaWebhookRequest.model_validate(json.loads(raw_body or b"{}"))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unparseable webhook body: {e}")
        return _ok()

    if event.event != "message":
        return _ok()

    payload = event.payload
    if payload.is_group or payload.is_from_me:
        return _ok()

    redis_client = get_redis_client(settings.redis_url, settings.redis_socket_timeout_seconds)
    if await is_duplicate_message_id(payload.id, guard=request.app.state.dedup, redis_client=redis_client):
        return _ok()

    text = payload.effective_text
    if not text or not payload.phone:
        return _ok()

    try:
        enabled = await asyncio.to_thread(is_bot_enabled)
    except Exception as e:
        logger.error(f"Bot enabled check failed: {e}")
        return _ok()
    if not enabled:
        logger.debug("Bot disabled, message ignored", extra={"context": {"phone": payload.phone}})
        return _ok()

    message = IncomingMessage(
        phone=payload.phone,
        text=text,
        message_id=payload.id or "",
        profile_name=payload.from_name or "",
        image_ref=payload.image_ref,
    )
    logger.info(
        "WhatsApp message received",
        extra={"context": {"phone": message.phone, "message_id": message.message_id, "has_image": bool(message.image_ref)}},
    )
    background_tasks.add_task(_process_message, request.app.state.conversations, message)
    return _ok()
