"""Wires the gateway, queue, sessions and engine together and owns the background loops."""

import asyncio
from typing import Optional

from kijumbe.config import Settings
from kijumbe.database import SessionLocal
from kijumbe.logging_config import get_logger
from kijumbe.schemas.greenapi import Notification
from kijumbe.services.conversation_service import ConversationEngine
from kijumbe.services.greenapi_service import GreenAPIClient
from kijumbe.services.notification_poller import InboundMessage, NotificationPoller
from kijumbe.services.outbox_service import DeliveryStatus, OutboundMessage, OutboundQueue
from kijumbe.services.persistence_service import Persistence, SqlPersistence
from kijumbe.services.rate_limiter import RateLimiter
from kijumbe.services.response_cache import ResponseCache
from kijumbe.services.session_store import SessionStore

logger = get_logger("bot_service")

POLL_TASK = "kijumbe-poll"


class BotService:
    def __init__(
        self,
        settings: Settings,
        client: Optional[GreenAPIClient] = None,
        persistence: Optional[Persistence] = None,
    ):
        self.settings = settings
        self.client = client or GreenAPIClient.from_settings(settings)
        self.persistence = persistence or SqlPersistence(SessionLocal)
        self.limiter = RateLimiter(settings.greenapi_rate_limit_per_minute)
        self.outbox = OutboundQueue(
            self.client,
            self.limiter,
            delay_seconds=settings.greenapi_queue_delay / 1000,
            max_retries=settings.greenapi_max_retry_attempts,
            send_timeout=settings.greenapi_message_timeout / 1000,
            recorder=self._record_delivery,
        )
        self.sessions = SessionStore(timeout_seconds=settings.session_timeout_minutes * 60)
        self.cache = ResponseCache.for_subjects(settings.response_cache_subjects)
        self.engine = ConversationEngine(
            self.sessions,
            self.persistence,
            self.outbox,
            cache=self.cache,
            settings=settings,
        )
        self.poller = NotificationPoller(
            self.client,
            self.engine.handle,
            poll_interval=settings.poll_interval_seconds,
            dispatch_interval=settings.dispatch_interval_seconds,
        )
        self.enabled = settings.bot_enabled
        self._tasks: list[asyncio.Task] = []

    def _record_delivery(self, message: OutboundMessage, status: DeliveryStatus, error: Optional[str]) -> None:
        self.persistence.record_delivery(
            message.recipient,
            message.body,
            message.kind.value,
            status.value,
            message.retry_count + 1,
            error,
        )

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def _restart_polling(self) -> None:
        """Bring polling back after it stopped itself, leaving the other loops alone."""
        poll = next((task for task in self._tasks if task.get_name() == POLL_TASK), None)
        if poll is not None and not poll.done():
            if self.poller.stopped:
                # The loop is still sleeping and re-checks the flag before its next tick
                self.poller.reset()
                logger.info("Polling resumed")
            return
        if poll is not None:
            self._tasks.remove(poll)
        self.poller.reset()
        self._tasks.append(asyncio.create_task(self.poller.run_polling(), name=POLL_TASK))
        logger.info("Polling restarted")

    async def start(self) -> None:
        if self.running:
            self._restart_polling()
            return
        self.poller.reset()
        self.outbox.resume()
        self._tasks = [
            asyncio.create_task(self.poller.run_polling(), name=POLL_TASK),
            asyncio.create_task(self.poller.run_dispatch(), name="kijumbe-dispatch"),
            asyncio.create_task(self.outbox.run(self.settings.dispatch_interval_seconds), name="kijumbe-outbox"),
            asyncio.create_task(
                self.sessions.run_sweeper(self.settings.session_sweep_interval_seconds), name="kijumbe-sweeper"
            ),
        ]
        logger.info(
            "Bot started",
            extra={
                "context": {
                    "instance": self.settings.greenapi_id_instance,
                    "rate_limit_per_minute": self.limiter.limit,
                    "queue_delay_ms": self.settings.greenapi_queue_delay,
                }
            },
        )

    async def stop(self) -> None:
        """Cancel the loops and any on-demand drain or dispatch. Unsent messages stay queued."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await self.outbox.pause()
        await self.poller.cancel_dispatch()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Bot stopped")

    async def enable(self) -> None:
        self.enabled = True
        await self.start()

    async def disable(self) -> None:
        self.enabled = False
        await self.stop()

    def accept_push(self, notification: Notification) -> Optional[InboundMessage]:
        """Webhook intake; ignored while the bot is disabled."""
        if not self.enabled:
            return None
        return self.poller.accept(notification)

    def status(self) -> dict:
        return {
            "enabled": self.enabled,
            "running": self.running,
            "poller_stopped_reason": self.poller.stopped_reason,
            "sessions": len(self.sessions),
            "queue": self.outbox.status(),
        }
