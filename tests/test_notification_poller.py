import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from kijumbe.schemas.greenapi import Notification
from kijumbe.services.notification_poller import STOPPED_AUTH, NotificationPoller, to_inbound
from kijumbe.services.result import AUTH, NETWORK, Result


def make_notification(receipt_id=1, phone="255712345678", text="hi", message_id=None, type_webhook="incomingMessageReceived"):
    return Notification.model_validate(
        {
            "receiptId": receipt_id,
            "body": {
                "typeWebhook": type_webhook,
                "idMessage": message_id or f"MSG{receipt_id}",
                "senderData": {"chatId": f"{phone}@c.us", "senderName": "Asha"},
                "messageData": {"typeMessage": "textMessage", "textMessageData": {"textMessage": text}},
            },
        }
    )


class FakeSource:
    def __init__(self, results):
        self.results = list(results)
        self.deleted: list[int] = []
        self.events: list[str] = []

    async def receive_notification(self):
        self.events.append("receive")
        return self.results.pop(0) if self.results else Result.success(None)

    async def delete_notification(self, receipt_id):
        self.events.append("delete")
        self.deleted.append(receipt_id)
        return Result.success(True)


class TestToInbound:
    def test_personal_text_message(self):
        message = to_inbound(make_notification(text="Toa 50000"))
        assert message.subject_id == "255712345678"
        assert message.text == "Toa 50000"
        assert message.sender_name == "Asha"

    def test_status_notification_is_skipped(self):
        assert to_inbound(make_notification(type_webhook="outgoingMessageStatus")) is None

    def test_group_chat_is_skipped(self):
        notification = make_notification()
        notification.body.senderData.chatId = "120363000000000000@g.us"
        assert to_inbound(notification) is None

    def test_extended_text(self):
        notification = Notification.model_validate(
            {
                "receiptId": 3,
                "body": {
                    "typeWebhook": "incomingMessageReceived",
                    "senderData": {"chatId": "255712345678@c.us"},
                    "messageData": {"typeMessage": "extendedTextMessage", "extendedTextMessageData": {"text": "salio"}},
                },
            }
        )
        assert to_inbound(notification).text == "salio"


class TestTick:
    @pytest.mark.asyncio
    async def test_handoff_before_acknowledge(self):
        source = FakeSource([Result.success(make_notification(receipt_id=5))])
        handler = AsyncMock()
        poller = NotificationPoller(source, handler)

        received = await poller.tick()

        assert received is True
        assert source.deleted == [5]
        assert source.events == ["receive", "delete"]
        await poller.process_pending()
        handler.assert_awaited_with("255712345678", "hi")

    @pytest.mark.asyncio
    async def test_no_notification_is_quiet(self):
        source = FakeSource([Result.success(None)])
        poller = NotificationPoller(source, AsyncMock())

        assert await poller.tick() is False
        assert source.deleted == []
        assert poller.stopped is False

    @pytest.mark.asyncio
    async def test_non_message_notification_is_acknowledged_without_dispatch(self):
        source = FakeSource([Result.success(make_notification(receipt_id=8, type_webhook="stateInstanceChanged"))])
        handler = AsyncMock()
        poller = NotificationPoller(source, handler)

        await poller.tick()
        await poller.process_pending()

        assert source.deleted == [8]
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    @patch("kijumbe.services.notification_poller.alert_critical")
    async def test_auth_failure_stops_polling(self, mock_alert):
        source = FakeSource([Result.failure("unauthorized", AUTH, 401)])
        poller = NotificationPoller(source, AsyncMock())

        await poller.tick()

        assert poller.stopped_reason == STOPPED_AUTH
        mock_alert.assert_called_once()
        assert await poller.tick() is False
        assert source.events == ["receive"]

    @pytest.mark.asyncio
    async def test_transient_failure_keeps_polling(self):
        source = FakeSource([Result.failure("reset", NETWORK), Result.success(make_notification())])
        poller = NotificationPoller(source, AsyncMock())

        assert await poller.tick() is False
        assert poller.stopped is False
        assert await poller.tick() is True

    @pytest.mark.asyncio
    async def test_replayed_message_is_dispatched_once(self):
        first = make_notification(receipt_id=1, message_id="SAME")
        replay = make_notification(receipt_id=2, message_id="SAME")
        source = FakeSource([Result.success(first), Result.success(replay)])
        handler = AsyncMock()
        poller = NotificationPoller(source, handler)

        await poller.tick()
        await poller.tick()
        await poller.process_pending()

        assert source.deleted == [1, 2]
        assert handler.await_count == 1


class TestDispatch:
    @pytest.mark.asyncio
    async def test_batch_runs_subjects_in_parallel(self):
        started = []
        release = asyncio.Event()

        async def handler(subject_id, text):
            started.append(subject_id)
            await release.wait()

        poller = NotificationPoller(FakeSource([]), handler)
        poller._processing = True
        poller.accept(make_notification(receipt_id=1, phone="255700000001"))
        poller.accept(make_notification(receipt_id=2, phone="255700000002"))
        poller._processing = False

        task = asyncio.create_task(poller.process_pending())
        for _ in range(5):
            await asyncio.sleep(0)

        assert sorted(started) == ["255700000001", "255700000002"]
        assert poller.is_processing is True
        release.set()
        assert await task == 2
        assert poller.pending == 0

    @pytest.mark.asyncio
    async def test_handler_error_does_not_break_batch(self):
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])
        poller = NotificationPoller(FakeSource([]), handler)
        poller._processing = True
        poller.accept(make_notification(receipt_id=1, phone="255700000001"))
        poller.accept(make_notification(receipt_id=2, phone="255700000002"))
        poller._processing = False

        assert await poller.process_pending() == 2
        assert handler.await_count == 2

    @pytest.mark.asyncio
    async def test_second_process_call_while_running_is_noop(self):
        poller = NotificationPoller(FakeSource([]), AsyncMock())
        poller._processing = True
        poller.accept(make_notification())

        assert await poller.process_pending() == 0
        assert poller.pending == 1
