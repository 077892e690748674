PUSH = {
    "typeWebhook": "incomingMessageReceived",
    "idMessage": "3EB0A1B2C3D4E5F6",
    "timestamp": 1700000000,
    "senderData": {"chatId": "255712345678@c.us", "senderName": "Asha"},
    "messageData": {"typeMessage": "textMessage", "textMessageData": {"textMessage": "salio"}},
}


class TestWebhook:
    def test_incoming_message_is_buffered(self, api, bot):
        response = api.post("/webhook", json=PUSH)

        assert response.status_code == 200
        assert response.json() == {"success": True, "accepted": True}
        assert bot.poller.pending == 1

    def test_wrapped_notification_is_accepted(self, api, bot):
        response = api.post("/webhook", json={"receiptId": 4, "body": PUSH})

        assert response.json()["accepted"] is True

    def test_replayed_push_is_dropped(self, api, bot):
        api.post("/webhook", json=PUSH)
        response = api.post("/webhook", json=PUSH)

        assert response.json()["accepted"] is False
        assert bot.poller.pending == 1

    def test_status_notification_is_ignored(self, api, bot):
        response = api.post("/webhook", json={"typeWebhook": "outgoingMessageStatus", "idMessage": "X"})

        assert response.json() == {"success": True, "accepted": False}
        assert bot.poller.pending == 0

    def test_disabled_bot_ignores_push(self, api, bot):
        bot.enabled = False

        response = api.post("/webhook", json=PUSH)

        assert response.json()["accepted"] is False
        assert bot.poller.pending == 0

    def test_invalid_payload(self, api):
        response = api.post("/webhook", json={"senderData": "broken"})
        assert response.status_code == 400


class TestWebhookSecret:
    def test_missing_secret_is_rejected(self, api, bot, monkeypatch):
        monkeypatch.setattr(bot.settings, "greenapi_webhook_secret", "hook-secret")

        response = api.post("/webhook", json=PUSH)

        assert response.status_code == 401
        assert bot.poller.pending == 0

    def test_bearer_secret_is_accepted(self, api, bot, monkeypatch):
        monkeypatch.setattr(bot.settings, "greenapi_webhook_secret", "hook-secret")

        response = api.post("/webhook", json=PUSH, headers={"Authorization": "Bearer hook-secret"})

        assert response.status_code == 200
        assert bot.poller.pending == 1
