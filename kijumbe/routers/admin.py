"""Operator endpoints for the bot: queue, loops, sessions and gateway instance."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from kijumbe.logging_config import get_logger, mask_phone
from kijumbe.routers.deps import get_bot, require_admin_token
from kijumbe.schemas.admin import (
    BotStatusResponse,
    ClearQueueResponse,
    QueueStatusResponse,
    SendRequest,
    SendResponse,
    SendTestRequest,
    WebhookUrlUpdate,
)
from kijumbe.services.bot_service import BotService

router = APIRouter(prefix="/admin", tags=["admin"])

logger = get_logger("admin")


# === QUEUE ===


@router.get("/queue-status", response_model=QueueStatusResponse)
async def queue_status(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    return bot.outbox.status()


@router.post("/clear-queue", response_model=ClearQueueResponse)
async def clear_queue(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    return ClearQueueResponse(cleared=bot.outbox.clear())


@router.post("/send", response_model=SendResponse)
async def send_message(
    payload: SendRequest,
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    if payload.kind == "media":
        if not payload.media_url:
            raise HTTPException(status_code=400, detail="media_url is required for media messages")
        message = bot.outbox.enqueue_media(
            payload.phone, payload.media_url, payload.message, payload.file_name, payload.media_type
        )
    elif payload.kind == "buttons":
        if not payload.buttons:
            raise HTTPException(status_code=400, detail="buttons are required for buttons messages")
        message = bot.outbox.enqueue_buttons(payload.phone, payload.message, payload.buttons)
    elif payload.kind == "list":
        if not payload.sections:
            raise HTTPException(status_code=400, detail="sections are required for list messages")
        message = bot.outbox.enqueue_list(payload.phone, payload.message, payload.sections)
    else:
        if not payload.message.strip():
            raise HTTPException(status_code=400, detail="message is required")
        message = bot.outbox.enqueue_text(payload.phone, payload.message)
    logger.info(
        "Operator message queued",
        extra={"context": {"kind": payload.kind, "phone": mask_phone(payload.phone)}},
    )
    return SendResponse(queued=True, message_id=message.id, queueLength=len(bot.outbox))


@router.post("/send-test", response_model=SendResponse)
async def send_test(
    payload: SendTestRequest,
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    message = bot.outbox.enqueue_text(payload.phone, payload.message)
    return SendResponse(queued=True, message_id=message.id, queueLength=len(bot.outbox))


# === BOT LIFECYCLE ===


@router.get("/bot-status", response_model=BotStatusResponse)
async def bot_status(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    return bot.status()


@router.post("/bot/enable", response_model=BotStatusResponse)
async def enable_bot(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    await bot.enable()
    logger.info("Bot enabled by operator")
    return bot.status()


@router.post("/bot/disable", response_model=BotStatusResponse)
async def disable_bot(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    await bot.disable()
    logger.info("Bot disabled by operator")
    return bot.status()


# === SESSIONS ===


@router.get("/sessions")
async def session_stats(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    return bot.sessions.stats()


@router.post("/sessions/clear")
async def clear_sessions(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    return {"success": True, "cleared": bot.sessions.clear()}


# === GATEWAY INSTANCE ===


@router.get("/instance-status")
async def instance_status(
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    state = await bot.client.get_instance_status()
    if not state.ok:
        raise HTTPException(status_code=502, detail=f"Gateway error: {state.error_code}")
    gateway_settings = await bot.client.get_instance_settings()
    return {
        "state": state.value.stateInstance,
        "settings": gateway_settings.value if gateway_settings.ok else None,
        "instance": bot.settings.greenapi_id_instance,
    }


@router.put("/webhook-url")
async def update_webhook_url(
    payload: WebhookUrlUpdate,
    bot: BotService = Depends(get_bot),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    result = await bot.client.set_webhook_url(payload.webhook_url, bot.settings.greenapi_webhook_secret)
    if not result.ok:
        raise HTTPException(status_code=502, detail=f"Gateway error: {result.error_code}")
    logger.info("Webhook URL updated", extra={"context": {"webhook_url": payload.webhook_url}})
    return {"success": True, "webhook_url": payload.webhook_url}
