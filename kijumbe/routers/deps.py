from typing import Optional

from fastapi import HTTPException, Request

from kijumbe.config import settings
from kijumbe.services.bot_service import BotService


def get_bot(request: Request) -> BotService:
    bot = getattr(request.app.state, "bot", None)
    if bot is None:
        raise HTTPException(status_code=503, detail="Bot not initialized")
    return bot


def require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")
