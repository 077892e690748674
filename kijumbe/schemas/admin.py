from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class QueueStatusResponse(BaseModel):
    queueLength: int
    isProcessing: bool
    isPaused: bool = False
    rateLimitCounter: int
    rateLimitResetTime: Optional[str] = None


class ClearQueueResponse(BaseModel):
    success: bool = True
    cleared: int


class WebhookUrlUpdate(BaseModel):
    webhook_url: str = Field(min_length=1)

    @field_validator("webhook_url")
    @classmethod
    def require_http(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return value


class SendRequest(BaseModel):
    phone: str = Field(min_length=5)
    message: str = ""
    kind: str = "text"
    media_url: Optional[str] = None
    file_name: Optional[str] = None
    media_type: str = "jpg"
    buttons: Optional[list[dict[str, Any]]] = None
    sections: Optional[list[dict[str, Any]]] = None

    @field_validator("kind")
    @classmethod
    def normalize_kind(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"text", "media", "buttons", "list"}:
            raise ValueError("kind must be one of text, media, buttons, list")
        return value


class SendTestRequest(BaseModel):
    phone: str = Field(min_length=5)
    message: str = "Kijumbe bot test message"


class SendResponse(BaseModel):
    queued: bool
    message_id: str
    queueLength: int


class BotStatusResponse(BaseModel):
    enabled: bool
    running: bool
    poller_stopped_reason: Optional[str] = None
    sessions: int
    queue: QueueStatusResponse
