"""Unit tests for BackendClient."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from wpp_console.core.exceptions import BackendAPIError
from wpp_console.services.backend_client import BackendClient

_RealAsyncClient = httpx.AsyncClient


def _mock_http(handler):
    """Route the client's httpx requests to ``handler``."""

    def factory(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)

    return patch("wpp_console.services.backend_client.httpx.AsyncClient", side_effect=factory)


class TestBackendClient:
    """Tests for BackendClient requests."""

    @pytest.mark.asyncio
    async def test_get_chats(self):
        """Test listing chats sends the bearer token and unwraps the body."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"chats": [{"chatId": "1@s.whatsapp.net"}]})

        client = BackendClient("http://api.example.com", token="secret")
        with _mock_http(handler):
            chats = await client.get_chats("device-1")

        assert chats == [{"chatId": "1@s.whatsapp.net"}]
        assert seen["url"] == "http://api.example.com/api/whatsapp/devices/device-1/chats"
        assert seen["auth"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_history_path_quotes_chat_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.raw_path.decode()
            return httpx.Response(200, json={"messages": []})

        client = BackendClient("http://api.example.com", token="")
        with _mock_http(handler):
            messages = await client.get_history("device-1", "628123@s.whatsapp.net")

        assert messages == []
        assert seen["path"] == "/api/whatsapp/devices/device-1/chats/628123%40s.whatsapp.net/history"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        """Test HTTP errors surface the backend's message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"success": False, "error": "Chat not found"})

        client = BackendClient("http://api.example.com", token="")
        with _mock_http(handler):
            with pytest.raises(BackendAPIError) as exc_info:
                await client.release_chat("device-1", "1@s.whatsapp.net")

        assert exc_info.value.status_code == 502
        assert exc_info.value.upstream_status == 404
        assert "Chat not found" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = BackendClient("http://api.example.com", token="")
        with _mock_http(handler):
            with pytest.raises(BackendAPIError) as exc_info:
                await client.get_agents()

        assert "Connection error" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_send_message_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "whatsappMessageId": "WA-1"})

        client = BackendClient("http://api.example.com", token="")
        with _mock_http(handler):
            result = await client.send_message("session-1", "1@s.whatsapp.net", "Hi", "7", "Alice")

        assert result["whatsappMessageId"] == "WA-1"
        assert seen["body"] == {
            "sessionId": "session-1",
            "recipient": "1@s.whatsapp.net",
            "message": "Hi",
            "agentId": "7",
            "agentName": "Alice",
        }

    @pytest.mark.asyncio
    async def test_ownership_and_settings_routes(self):
        """Test ownership actions hit the chat routes with the expected bodies."""
        client = BackendClient("http://api.example.com", token="")
        client._request = AsyncMock(return_value={"success": True})
        path = "/api/whatsapp/devices/device-1/chats/1%40s.whatsapp.net"

        await client.takeover_chat("device-1", "1@s.whatsapp.net", "7", "Alice")
        await client.handover_chat("device-1", "1@s.whatsapp.net", "8", "Bob", "vip")
        await client.update_chat_settings("device-1", "1@s.whatsapp.net", {"status": "resolved"})

        calls = client._request.call_args_list
        assert calls[0].args == ("POST", f"{path}/takeover")
        assert calls[0].kwargs == {"json": {"agentId": "7", "agentName": "Alice"}}
        assert calls[1].kwargs == {"json": {"toAgentId": "8", "toAgentName": "Bob", "notes": "vip"}}
        assert calls[2].args == ("PUT", f"{path}/settings")

    @pytest.mark.asyncio
    async def test_send_image_is_multipart(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(200, json={"messageId": "WA-IMG", "mediaUrl": "https://cdn/x.jpg"})

        client = BackendClient("http://api.example.com", token="")
        with _mock_http(handler):
            result = await client.send_image("session-1", "1@s.whatsapp.net", b"\xff\xd8", "x.jpg", caption="look")

        assert result["mediaUrl"] == "https://cdn/x.jpg"
        assert seen["content_type"].startswith("multipart/form-data")
        assert b'name="caption"' in seen["body"]
        assert b'filename="x.jpg"' in seen["body"]


class TestWebsocketUrl:
    """Tests for event stream URL generation."""

    def test_derived_from_http_url(self):
        """Test WebSocket URL generation for HTTP API."""
        with patch("wpp_console.services.backend_client.settings") as mock_settings:
            mock_settings.CONSOLE_API_URL = "http://api.example.com"
            mock_settings.CONSOLE_API_TOKEN = "secret"
            mock_settings.CONSOLE_WS_URL = None
            mock_settings.CONSOLE_WS_TOKEN = ""

            url = BackendClient().get_websocket_url()

        assert url == "ws://api.example.com/ws?token=secret"

    def test_https_uses_wss(self):
        """Test WebSocket URL generation for HTTPS API."""
        with patch("wpp_console.services.backend_client.settings") as mock_settings:
            mock_settings.CONSOLE_API_URL = "https://api.example.com"
            mock_settings.CONSOLE_API_TOKEN = "secret"
            mock_settings.CONSOLE_WS_URL = None

            url = BackendClient().get_websocket_url("t0k")

        assert url == "wss://api.example.com/ws?token=t0k"

    def test_explicit_url(self):
        """Test a configured stream URL and token take precedence."""
        with patch("wpp_console.services.backend_client.settings") as mock_settings:
            mock_settings.CONSOLE_API_URL = "http://api.example.com"
            mock_settings.CONSOLE_API_TOKEN = "secret"
            mock_settings.CONSOLE_WS_URL = "ws://stream.example.com:3001"
            mock_settings.CONSOLE_WS_TOKEN = "ws-token"

            url = BackendClient().get_websocket_url()

        assert url == "ws://stream.example.com:3001?token=ws-token"

    def test_auth_header_without_token(self):
        """Test auth header is empty when no token is configured."""
        client = BackendClient("http://api.example.com", token="")

        assert client.get_auth_header() == {}
