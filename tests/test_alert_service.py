from unittest.mock import MagicMock, Mock, patch

import httpx

from kijumbe.services.alert_service import alert_critical, alert_error, send_alert


class TestSendAlert:
    @patch("kijumbe.services.alert_service.ALERT_BOT_TOKEN", None)
    @patch("kijumbe.services.alert_service.ALERT_CHAT_ID", None)
    def test_returns_false_when_not_configured(self):
        assert send_alert("ERROR", "Test message") is False

    @patch("kijumbe.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("kijumbe.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("kijumbe.services.alert_service.httpx.Client")
    def test_sends_alert_to_telegram(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_response = Mock()
        mock_response.status_code = 200
        mock_client.post.return_value = mock_response

        result = send_alert("ERROR", "Outbound message dropped", {"phone": "***678#abc"})

        assert result is True
        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token/sendMessage" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "ERROR" in json_data["text"]
        assert "kijumbe-bot" in json_data["text"]
        assert "***678#abc" in json_data["text"]

    @patch("kijumbe.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("kijumbe.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("kijumbe.services.alert_service.httpx.Client")
    def test_returns_false_on_http_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("refused")

        assert send_alert("CRITICAL", "Polling stopped") is False

    @patch("kijumbe.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("kijumbe.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("kijumbe.services.alert_service.httpx.Client")
    def test_returns_false_on_unexpected_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = ValueError("bad header")

        assert send_alert("ERROR", "WhatsApp delivery failed") is False


class TestAlertHelpers:
    @patch("kijumbe.services.alert_service.send_alert")
    def test_alert_error(self, mock_send):
        alert_error("Failed", {"key": "value"})
        mock_send.assert_called_once_with("ERROR", "Failed", {"key": "value"})

    @patch("kijumbe.services.alert_service.send_alert")
    def test_alert_critical(self, mock_send):
        alert_critical("Auth failed")
        mock_send.assert_called_once_with("CRITICAL", "Auth failed", None)
