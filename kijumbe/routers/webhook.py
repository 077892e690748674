import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import ValidationError

from kijumbe.logging_config import get_logger
from kijumbe.routers.deps import get_bot
from kijumbe.schemas.greenapi import Notification, NotificationBody
from kijumbe.services.bot_service import BotService

router = APIRouter(tags=["webhook"])

logger = get_logger("webhook")


def _check_secret(expected: str, authorization: Optional[str]) -> None:
    if not expected:
        return
    provided = (authorization or "").removeprefix("Bearer ").strip()
    if not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook token")


@router.post("/webhook")
async def receive_webhook(
    payload: dict,
    bot: BotService = Depends(get_bot),
    authorization: Optional[str] = Header(default=None),
):
    """Green API push intake. Goes through the same hand-off as polling."""
    _check_secret(bot.settings.greenapi_webhook_secret, authorization)
    try:
        # Push payloads carry the notification body directly, without a receipt
        body = NotificationBody.model_validate(payload.get("body", payload))
    except ValidationError as exc:
        logger.warning("Invalid webhook payload", extra={"context": {"errors": exc.error_count()}})
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    message = bot.accept_push(Notification(receiptId=payload.get("receiptId", 0), body=body))
    return {"success": True, "accepted": message is not None}
