"""Inbound notification intake: poll, hand off, acknowledge, dispatch in batches."""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Protocol

from kijumbe.logging_config import get_logger, mask_phone
from kijumbe.schemas.greenapi import Notification
from kijumbe.services.alert_service import alert_critical
from kijumbe.services.result import AUTH, NOT_CONFIGURED, Result

logger = get_logger("notification_poller")

DEDUPE_WINDOW = 1000
STOPPED_AUTH = "auth_failed"
STOPPED_NOT_CONFIGURED = "not_configured"


@dataclass
class InboundMessage:
    subject_id: str
    text: str
    message_id: Optional[str] = None
    sender_name: Optional[str] = None
    received_at: float = field(default_factory=time.time)


class NotificationSource(Protocol):
    async def receive_notification(self) -> Result[Optional[Notification]]: ...

    async def delete_notification(self, receipt_id: int) -> Result[bool]: ...


MessageHandler = Callable[[str, str], Awaitable[object]]


def to_inbound(notification: Notification) -> Optional[InboundMessage]:
    """Inbound message for personal chats; None for statuses, groups and other events."""
    body = notification.body
    if not body.is_personal_message:
        return None
    text = body.messageData.text() if body.messageData else ""
    return InboundMessage(
        subject_id=body.phone,
        text=text,
        message_id=body.idMessage,
        sender_name=body.senderData.senderName if body.senderData else None,
    )


class NotificationPoller:
    """Fetches one notification per tick and dispatches buffered messages in batches.

    A notification is acknowledged only after its message has been buffered,
    so a crash between the two replays it. Replays are dropped by message id.
    """

    def __init__(
        self,
        source: NotificationSource,
        handler: MessageHandler,
        poll_interval: float = 1.0,
        dispatch_interval: float = 0.5,
        dedupe_window: int = DEDUPE_WINDOW,
    ):
        self._source = source
        self._handler = handler
        self.poll_interval = poll_interval
        self.dispatch_interval = dispatch_interval
        self._dedupe_window = dedupe_window
        self._pending: deque[InboundMessage] = deque()
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._processing = False
        self._dispatch_task: Optional[asyncio.Task] = None
        self.stopped_reason: Optional[str] = None

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def stopped(self) -> bool:
        return self.stopped_reason is not None

    def reset(self) -> None:
        self.stopped_reason = None

    def stop(self, reason: str) -> None:
        if self.stopped_reason is None:
            self.stopped_reason = reason
            logger.error("Notification polling stopped", extra={"context": {"reason": reason}})

    # === INTAKE ===

    def _is_duplicate(self, message_id: Optional[str]) -> bool:
        if not message_id:
            return False
        if message_id in self._seen:
            return True
        self._seen[message_id] = None
        while len(self._seen) > self._dedupe_window:
            self._seen.popitem(last=False)
        return False

    def accept(self, notification: Notification) -> Optional[InboundMessage]:
        """Hand a notification off to the dispatch buffer. Shared by polling and webhook push."""
        message = to_inbound(notification)
        if message is None:
            logger.debug(
                "Notification skipped",
                extra={"context": {"type": notification.body.typeWebhook, "receipt_id": notification.receipt_id}},
            )
            return None
        if self._is_duplicate(message.message_id):
            logger.info("Duplicate notification dropped", extra={"context": {"message_id": message.message_id}})
            return None
        self._pending.append(message)
        logger.info(
            "Inbound message",
            extra={"context": {"phone": mask_phone(message.subject_id), "message_id": message.message_id}},
        )
        self._arm_dispatch()
        return message

    async def tick(self) -> bool:
        """Fetch and hand off at most one notification. Returns True if one was received."""
        if self.stopped:
            return False
        result = await self._source.receive_notification()
        if not result.ok:
            if result.error_code == AUTH:
                self.stop(STOPPED_AUTH)
                alert_critical("Green API authentication failed, polling stopped", {"error": result.error})
            elif result.error_code == NOT_CONFIGURED:
                self.stop(STOPPED_NOT_CONFIGURED)
            else:
                logger.warning(
                    "Notification fetch failed",
                    extra={"context": {"error_code": result.error_code, "error": result.error}},
                )
            return False

        notification = result.value
        if notification is None:
            return False

        self.accept(notification)
        ack = await self._source.delete_notification(notification.receipt_id)
        if not ack.ok:
            logger.warning(
                "Notification acknowledge failed",
                extra={"context": {"receipt_id": notification.receipt_id, "error": ack.error}},
            )
        return True

    # === DISPATCH ===

    def _arm_dispatch(self) -> None:
        if self._processing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = loop.create_task(self.process_pending())

    async def _dispatch(self, message: InboundMessage) -> None:
        try:
            await self._handler(message.subject_id, message.text)
        except Exception as exc:
            logger.error(
                "Dispatch failed",
                extra={"context": {"phone": mask_phone(message.subject_id), "error": str(exc)}},
                exc_info=True,
            )

    async def process_pending(self) -> int:
        """Dispatch everything buffered so far as one parallel batch."""
        if self._processing or not self._pending:
            return 0
        self._processing = True
        try:
            batch = list(self._pending)
            self._pending.clear()
            await asyncio.gather(*(self._dispatch(message) for message in batch))
            return len(batch)
        finally:
            self._processing = False

    async def cancel_dispatch(self) -> None:
        task, self._dispatch_task = self._dispatch_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # === LOOPS ===

    async def run_polling(self) -> None:
        while not self.stopped:
            try:
                await self.tick()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Polling loop failed", extra={"context": {"error": str(exc)}})
                await asyncio.sleep(self.poll_interval)

    async def run_dispatch(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.dispatch_interval)
                await self.process_pending()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Dispatch loop failed", extra={"context": {"error": str(exc)}})
