from unittest.mock import AsyncMock, patch

import httpx

from kijumbe.routers import deps
from kijumbe.services.outbox_service import MessageKind
from kijumbe.services.state_machine import Flow


def auth(token):
    return {"X-Admin-Token": token}


class TestAdminAuth:
    def test_missing_token_is_rejected(self, api, admin_token):
        response = api.get("/admin/queue-status")
        assert response.status_code == 401

    def test_wrong_token_is_rejected(self, api, admin_token):
        response = api.get("/admin/queue-status", headers=auth("nope"))
        assert response.status_code == 401

    def test_unconfigured_token_is_server_error(self, api, monkeypatch):
        monkeypatch.setattr(deps.settings, "admin_token", "")
        response = api.get("/admin/queue-status", headers=auth("anything"))
        assert response.status_code == 500


class TestQueueEndpoints:
    def test_queue_status(self, api, bot, admin_token):
        bot.outbox.enqueue_text("255700000001", "habari")

        response = api.get("/admin/queue-status", headers=auth(admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["queueLength"] == 1
        assert data["rateLimitCounter"] == 0
        assert "rateLimitResetTime" in data

    def test_clear_queue(self, api, bot, admin_token):
        bot.outbox.enqueue_text("255700000001", "a")
        bot.outbox.enqueue_text("255700000002", "b")

        response = api.post("/admin/clear-queue", headers=auth(admin_token))

        assert response.json() == {"success": True, "cleared": 2}
        assert len(bot.outbox) == 0

    def test_send_text(self, api, bot, admin_token):
        response = api.post(
            "/admin/send",
            headers=auth(admin_token),
            json={"phone": "255700000001", "message": "Karibu"},
        )

        assert response.status_code == 200
        assert response.json()["queued"] is True
        assert response.json()["queueLength"] == 1
        assert bot.outbox.status()["queueLength"] == 1

    def test_send_media_requires_url(self, api, admin_token):
        response = api.post(
            "/admin/send",
            headers=auth(admin_token),
            json={"phone": "255700000001", "kind": "media"},
        )
        assert response.status_code == 400

    def test_send_media_keeps_type_and_name(self, api, bot, admin_token):
        response = api.post(
            "/admin/send",
            headers=auth(admin_token),
            json={
                "phone": "255700000001",
                "kind": "media",
                "message": "Risiti",
                "media_url": "https://cdn.example/risiti.pdf",
                "file_name": "risiti.pdf",
                "media_type": "pdf",
            },
        )

        assert response.status_code == 200
        queued = bot.outbox._messages[0]
        assert queued.kind == MessageKind.MEDIA
        assert queued.body == "Risiti"
        assert queued.payload == {
            "media_url": "https://cdn.example/risiti.pdf",
            "file_name": "risiti.pdf",
            "media_type": "pdf",
        }

    def test_send_buttons(self, api, bot, admin_token):
        response = api.post(
            "/admin/send",
            headers=auth(admin_token),
            json={"phone": "255700000001", "message": "Chagua", "kind": "buttons", "buttons": [{"text": "Ndiyo"}]},
        )

        assert response.status_code == 200
        assert bot.outbox._messages[0].kind == MessageKind.BUTTONS

    def test_unknown_kind_is_invalid(self, api, admin_token):
        response = api.post(
            "/admin/send",
            headers=auth(admin_token),
            json={"phone": "255700000001", "message": "x", "kind": "sticker"},
        )
        assert response.status_code == 422

    def test_send_test_uses_default_message(self, api, bot, admin_token):
        response = api.post("/admin/send-test", headers=auth(admin_token), json={"phone": "255700000001"})

        assert response.status_code == 200
        assert bot.outbox._messages[0].body == "Kijumbe bot test message"


class TestBotLifecycle:
    def test_bot_status(self, api, admin_token):
        response = api.get("/admin/bot-status", headers=auth(admin_token))

        data = response.json()
        assert data["enabled"] is True
        assert data["running"] is False
        assert data["queue"]["queueLength"] == 0

    def test_disable_and_enable(self, api, bot, admin_token):
        response = api.post("/admin/bot/disable", headers=auth(admin_token))
        assert response.json()["enabled"] is False

        with patch.object(type(bot), "start", new=AsyncMock()) as mock_start:
            response = api.post("/admin/bot/enable", headers=auth(admin_token))

        assert response.json()["enabled"] is True
        mock_start.assert_awaited_once()


class TestSessions:
    def test_stats_and_clear(self, api, bot, admin_token):
        bot.sessions.start_flow("255700000001", Flow.CONTRIBUTION)

        stats = api.get("/admin/sessions", headers=auth(admin_token)).json()
        assert stats["active_sessions"] == 1
        assert stats["by_flow"] == {"contribute": 1}

        cleared = api.post("/admin/sessions/clear", headers=auth(admin_token)).json()
        assert cleared == {"success": True, "cleared": 1}
        assert len(bot.sessions) == 0


class TestInstance:
    def test_instance_status(self, api, admin_token):
        response = api.get("/admin/instance-status", headers=auth(admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "authorized"
        assert data["instance"] == "1101000001"
        assert data["settings"]["delaySendMessagesMilliseconds"] == 1000

    def test_instance_status_gateway_failure(self, api, bot, admin_token):
        bot.client._transport = httpx.MockTransport(lambda request: httpx.Response(401))

        response = api.get("/admin/instance-status", headers=auth(admin_token))

        assert response.status_code == 502

    def test_update_webhook_url(self, api, admin_token):
        response = api.put(
            "/admin/webhook-url",
            headers=auth(admin_token),
            json={"webhook_url": "https://bot.example/webhook"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "webhook_url": "https://bot.example/webhook"}

    def test_update_webhook_url_rejects_non_http(self, api, admin_token):
        response = api.put("/admin/webhook-url", headers=auth(admin_token), json={"webhook_url": "ftp://x"})
        assert response.status_code == 422


class TestHealth:
    def test_health(self, api):
        assert api.get("/health").json() == {"status": "ok"}
