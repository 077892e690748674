"""In-memory outbound queue with pacing, rate limiting and bounded retries."""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from kijumbe.logging_config import get_logger, mask_phone
from kijumbe.services.alert_service import alert_error
from kijumbe.services.rate_limiter import RateLimiter
from kijumbe.services.result import NETWORK, TIMEOUT, Result

logger = get_logger("outbox_service")


class MessageKind(str, Enum):
    TEXT = "text"
    MEDIA = "media"
    BUTTONS = "buttons"
    LIST = "list"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass
class OutboundMessage:
    recipient: str
    body: str
    kind: MessageKind = MessageKind.TEXT
    payload: dict[str, Any] = field(default_factory=dict)
    enqueued_at: float = field(default_factory=time.time)
    retry_count: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class Sender(Protocol):
    async def send_text(self, phone: str, message: str, quoted_message_id: Optional[str] = None) -> Result: ...

    async def send_media(
        self,
        phone: str,
        media_url: str,
        caption: str = "",
        file_name: Optional[str] = None,
        media_type: str = "jpg",
    ) -> Result: ...

    async def send_buttons(self, phone: str, message: str, buttons: list[dict]) -> Result: ...

    async def send_list(self, phone: str, message: str, sections: list[dict]) -> Result: ...


DeliveryRecorder = Callable[[OutboundMessage, DeliveryStatus, Optional[str]], None]


class OutboundQueue:
    """FIFO of outbound messages drained by a single paced loop.

    A message that fails is put back at the head, so ordering per queue is
    preserved while it retries. After `max_retries` retries it is recorded
    as failed and dropped.
    """

    def __init__(
        self,
        sender: Sender,
        limiter: RateLimiter,
        delay_seconds: float = 2.0,
        max_retries: int = 3,
        send_timeout: float = 10.0,
        recorder: Optional[DeliveryRecorder] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._sender = sender
        self._limiter = limiter
        self.delay_seconds = delay_seconds
        self.max_retries = max_retries
        self.send_timeout = send_timeout
        self._recorder = recorder
        self._sleep = sleep
        self._lock = threading.Lock()
        self._messages: deque[OutboundMessage] = deque()
        self._processing = False
        self._paused = False
        self._drain_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    @property
    def is_processing(self) -> bool:
        return self._processing

    # === ENQUEUE ===

    def enqueue(self, message: OutboundMessage) -> OutboundMessage:
        with self._lock:
            self._messages.append(message)
        logger.debug(
            "Message queued",
            extra={"context": {"id": message.id, "kind": message.kind.value, "phone": mask_phone(message.recipient)}},
        )
        self._arm()
        return message

    def enqueue_text(self, recipient: str, body: str, quoted_message_id: Optional[str] = None) -> OutboundMessage:
        payload = {"quoted_message_id": quoted_message_id} if quoted_message_id else {}
        return self.enqueue(OutboundMessage(recipient=recipient, body=body, payload=payload))

    def enqueue_media(
        self,
        recipient: str,
        media_url: str,
        caption: str = "",
        file_name: Optional[str] = None,
        media_type: str = "jpg",
    ) -> OutboundMessage:
        payload = {"media_url": media_url, "file_name": file_name, "media_type": media_type}
        return self.enqueue(OutboundMessage(recipient=recipient, body=caption, kind=MessageKind.MEDIA, payload=payload))

    def enqueue_buttons(self, recipient: str, body: str, buttons: list[dict]) -> OutboundMessage:
        return self.enqueue(
            OutboundMessage(recipient=recipient, body=body, kind=MessageKind.BUTTONS, payload={"buttons": buttons})
        )

    def enqueue_list(self, recipient: str, body: str, sections: list[dict]) -> OutboundMessage:
        return self.enqueue(
            OutboundMessage(recipient=recipient, body=body, kind=MessageKind.LIST, payload={"sections": sections})
        )

    def _arm(self) -> None:
        """Start a drain on the running loop unless one is already active."""
        if self._processing or self._paused:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Sync caller outside the loop; the pace loop picks the message up
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self.drain())

    # === DRAIN ===

    def _peek(self) -> Optional[OutboundMessage]:
        with self._lock:
            return self._messages[0] if self._messages else None

    def _pop(self, message: OutboundMessage) -> None:
        with self._lock:
            if self._messages and self._messages[0] is message:
                self._messages.popleft()

    def _requeue_head(self, message: OutboundMessage) -> None:
        with self._lock:
            self._messages.appendleft(message)

    async def _send(self, message: OutboundMessage) -> Result:
        if message.kind is MessageKind.MEDIA:
            return await self._sender.send_media(
                message.recipient,
                message.payload["media_url"],
                caption=message.body,
                file_name=message.payload.get("file_name"),
                media_type=message.payload.get("media_type", "jpg"),
            )
        if message.kind is MessageKind.BUTTONS:
            return await self._sender.send_buttons(message.recipient, message.body, message.payload["buttons"])
        if message.kind is MessageKind.LIST:
            return await self._sender.send_list(message.recipient, message.body, message.payload["sections"])
        return await self._sender.send_text(
            message.recipient, message.body, quoted_message_id=message.payload.get("quoted_message_id")
        )

    async def _send_with_timeout(self, message: OutboundMessage) -> Result:
        try:
            return await asyncio.wait_for(self._send(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            return Result.failure(f"send exceeded {self.send_timeout}s", TIMEOUT)
        except Exception as exc:
            logger.error(
                "Sender raised",
                extra={"context": {"id": message.id, "kind": message.kind.value, "error": str(exc)}},
            )
            return Result.failure(f"{type(exc).__name__}: {exc}", NETWORK)

    async def drain(self) -> int:
        """Send queued messages until the queue is empty. Returns how many were delivered."""
        if self._processing or self._paused:
            return 0
        self._processing = True
        delivered = 0
        try:
            while True:
                message = self._peek()
                if message is None:
                    break

                if not self._limiter.try_acquire():
                    logger.debug("Rate limit reached, holding queue", extra={"context": {"queued": len(self)}})
                    await self._sleep(self.delay_seconds)
                    continue

                # Taken off the queue while in flight so clear() cannot race the retry
                self._pop(message)
                try:
                    result = await self._send_with_timeout(message)
                except asyncio.CancelledError:
                    self._requeue_head(message)
                    raise
                if result.ok:
                    delivered += 1
                    self._record(message, DeliveryStatus.SENT, None)
                    await self._sleep(self.delay_seconds)
                    continue

                if message.retry_count < self.max_retries:
                    message.retry_count += 1
                    message.enqueued_at = time.time()
                    self._requeue_head(message)
                    logger.warning(
                        "Send failed, retrying",
                        extra={
                            "context": {
                                "id": message.id,
                                "retry": message.retry_count,
                                "error_code": result.error_code,
                                "error": result.error,
                            }
                        },
                    )
                    await self._sleep(self.delay_seconds)
                    continue

                logger.error(
                    "Send failed permanently",
                    extra={
                        "context": {
                            "id": message.id,
                            "phone": mask_phone(message.recipient),
                            "attempts": message.retry_count + 1,
                            "error_code": result.error_code,
                            "error": result.error,
                        }
                    },
                )
                self._record(message, DeliveryStatus.FAILED, result.error)
                alert_error(
                    "WhatsApp delivery failed",
                    {"phone": mask_phone(message.recipient), "error": result.error_code or "unknown"},
                )
        finally:
            self._processing = False
        return delivered

    def _record(self, message: OutboundMessage, status: DeliveryStatus, error: Optional[str]) -> None:
        if self._recorder is None:
            return
        try:
            self._recorder(message, status, error)
        except Exception as exc:
            logger.error(
                "Failed to store delivery record",
                extra={"context": {"id": message.id, "status": status.value, "error": str(exc)}},
            )

    async def run(self, interval_seconds: float = 1.0) -> None:
        """Pace loop: re-arms a drain for anything enqueued outside the event loop."""
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                if len(self) and not self._processing:
                    await self.drain()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Outbound pace loop failed", extra={"context": {"error": str(exc)}})

    # === OPERATOR ===

    async def pause(self) -> None:
        """Stop sending. Queued messages stay put and an in-flight send is put back at the head."""
        self._paused = True
        task, self._drain_task = self._drain_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info("Outbound queue paused", extra={"context": {"queued": len(self)}})

    def resume(self) -> None:
        self._paused = False
        if len(self):
            self._arm()

    @property
    def paused(self) -> bool:
        return self._paused

    def status(self) -> dict:
        return {
            "queueLength": len(self),
            "isProcessing": self._processing,
            "isPaused": self._paused,
            **self._limiter.status(),
        }

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._messages)
            self._messages.clear()
        logger.info("Outbound queue cleared", extra={"context": {"cleared": cleared}})
        return cleared
