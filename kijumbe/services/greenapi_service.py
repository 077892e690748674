"""Green API WhatsApp gateway client.

Every call returns a Result instead of raising, so callers decide between
retrying, stopping or ignoring based on `error_code`.
"""

import time
from typing import Any, Optional, Union

import httpx
from pydantic import ValidationError

from kijumbe.config import Settings
from kijumbe.logging_config import get_logger, mask_phone
from kijumbe.schemas.greenapi import (
    PERSONAL_CHAT_SUFFIX,
    UNPARSEABLE,
    InstanceState,
    Notification,
    NotificationBody,
)
from kijumbe.services import result as codes
from kijumbe.services.result import Result

logger = get_logger("greenapi_service")


def chat_id_for(phone: str) -> str:
    phone = phone.strip().lstrip("+")
    if phone.endswith(PERSONAL_CHAT_SUFFIX):
        return phone
    return f"{phone}{PERSONAL_CHAT_SUFFIX}"


class GreenAPIClient:
    """Async client for the Green API HTTP endpoints."""

    URL_TEMPLATE = "{base}/waInstance{instance}/{method}/{token}"

    def __init__(
        self,
        api_url: str,
        id_instance: str,
        api_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.id_instance = id_instance
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "GreenAPIClient":
        return cls(
            api_url=settings.greenapi_api_url,
            id_instance=settings.greenapi_id_instance,
            api_token=settings.greenapi_api_token_instance,
            timeout=settings.greenapi_message_timeout / 1000,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.id_instance and self.api_token)

    def _url(self, method: str, suffix: Optional[Union[str, int]] = None) -> str:
        url = self.URL_TEMPLATE.format(
            base=self.api_url,
            instance=self.id_instance,
            method=method,
            token=self.api_token,
        )
        if suffix is not None:
            url = f"{url}/{suffix}"
        return url

    async def _request(
        self,
        method: str,
        http_method: str = "POST",
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        suffix: Optional[Union[str, int]] = None,
    ) -> Result[Any]:
        if not self.configured:
            return Result.failure("Green API credentials are not configured", codes.NOT_CONFIGURED)

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(http_method, self._url(method, suffix), json=json, params=params)
        except httpx.TimeoutException as exc:
            logger.warning(
                "Green API timeout",
                extra={"context": {"method": method, "error": str(exc) or type(exc).__name__}},
            )
            return Result.failure(f"{method} timed out", codes.TIMEOUT)
        except httpx.HTTPError as exc:
            logger.warning(
                "Green API network error",
                extra={"context": {"method": method, "error": str(exc) or type(exc).__name__}},
            )
            return Result.failure(f"{method} failed: {exc}", codes.NETWORK)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if response.status_code in (401, 403):
            return Result.failure(f"{method} unauthorized", codes.AUTH, response.status_code)
        if response.status_code >= 400:
            return Result.failure(
                f"{method} returned HTTP {response.status_code}",
                codes.HTTP_ERROR,
                response.status_code,
            )

        if not response.content or not response.content.strip():
            return Result.success(None)
        try:
            data = response.json()
        except ValueError:
            return Result.failure(f"{method} returned invalid JSON", codes.INVALID_PAYLOAD, response.status_code)

        logger.debug(
            "Green API call",
            extra={"context": {"method": method, "status": response.status_code, "elapsed_ms": elapsed_ms}},
        )
        return Result.success(data)

    # === SENDING ===

    async def send_text(self, phone: str, message: str, quoted_message_id: Optional[str] = None) -> Result[dict]:
        payload = {"chatId": chat_id_for(phone), "message": message}
        if quoted_message_id:
            payload["quotedMessageId"] = quoted_message_id
        result = await self._request("SendMessage", json=payload)
        if result.ok:
            logger.info("Message sent", extra={"context": {"phone": mask_phone(phone)}})
        return result

    async def send_media(
        self,
        phone: str,
        media_url: str,
        caption: str = "",
        file_name: Optional[str] = None,
        media_type: str = "jpg",
    ) -> Result[dict]:
        payload = {
            "chatId": chat_id_for(phone),
            "urlFile": media_url,
            "fileName": file_name or f"kijumbe_{int(time.time() * 1000)}.{media_type}",
            "caption": caption,
        }
        return await self._request("SendFileByUrl", json=payload)

    async def send_buttons(self, phone: str, message: str, buttons: list[dict]) -> Result[dict]:
        normalized = []
        for index, button in enumerate(buttons, start=1):
            normalized.append(
                {
                    "buttonText": button.get("buttonText") or button.get("text") or "",
                    "buttonId": str(button.get("buttonId") or button.get("id") or index),
                }
            )
        payload = {"chatId": chat_id_for(phone), "message": message, "buttons": normalized}
        return await self._request("SendButtons", json=payload)

    async def send_list(self, phone: str, message: str, sections: list[dict]) -> Result[dict]:
        payload = {"chatId": chat_id_for(phone), "message": message, "sections": sections}
        return await self._request("SendList", json=payload)

    # === NOTIFICATIONS ===

    async def receive_notification(self) -> Result[Optional[Notification]]:
        """Fetch the oldest pending notification; success(None) when there is none."""
        result = await self._request("receiveNotification", http_method="GET")
        if not result.ok:
            if result.status_code == 404:
                return Result.success(None)
            return result
        if not result.value:
            return Result.success(None)
        try:
            return Result.success(Notification.model_validate(result.value))
        except ValidationError as exc:
            receipt_id = result.value.get("receiptId") if isinstance(result.value, dict) else None
            logger.warning(
                "Malformed notification",
                extra={"context": {"receipt_id": receipt_id, "errors": exc.error_count()}},
            )
            if receipt_id is None:
                return Result.failure("Malformed notification without receiptId", codes.INVALID_PAYLOAD)
            # Still hand back the receipt so the poller can acknowledge and skip it
            return Result.success(
                Notification(receiptId=receipt_id, body=NotificationBody(typeWebhook=UNPARSEABLE))
            )

    async def delete_notification(self, receipt_id: int) -> Result[bool]:
        result = await self._request("deleteNotification", http_method="DELETE", suffix=receipt_id)
        if not result.ok:
            return result
        value = result.value if isinstance(result.value, dict) else {}
        return Result.success(bool(value.get("result", True)))

    # === INSTANCE ===

    async def get_instance_status(self) -> Result[InstanceState]:
        result = await self._request("getStateInstance", http_method="GET")
        if not result.ok:
            return result
        return Result.success(InstanceState.model_validate(result.value or {}))

    async def get_instance_settings(self) -> Result[dict]:
        return await self._request("getSettings", http_method="GET")

    async def set_webhook_url(self, webhook_url: str, webhook_token: str = "") -> Result[dict]:
        payload = {"webhookUrl": webhook_url}
        if webhook_token:
            payload["webhookUrlToken"] = webhook_token
        return await self._request("setSettings", json=payload)

    async def get_chat_history(self, phone: str, count: int = 100) -> Result[list]:
        payload = {"chatId": chat_id_for(phone), "count": count}
        return await self._request("getChatHistory", json=payload)

    async def mark_read(self, phone: str, message_id: Optional[str] = None) -> Result[dict]:
        payload = {"chatId": chat_id_for(phone)}
        if message_id:
            payload["idMessage"] = message_id
        return await self._request("readChat", json=payload)
