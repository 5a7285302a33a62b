"""HTTP client for the console backend REST API."""

import logging
from typing import Any
from urllib.parse import quote, urlencode, urlparse

import httpx

from wpp_console.config import settings
from wpp_console.core.exceptions import BackendAPIError

logger = logging.getLogger(__name__)


class BackendClient:
    """HTTP client for the backend that fronts the WhatsApp provider."""

    def __init__(self, base_url: str | None = None, token: str | None = None):
        self.base_url = (base_url or settings.CONSOLE_API_URL).rstrip("/")
        self.token = token if token is not None else settings.CONSOLE_API_TOKEN
        self.timeout = settings.HTTP_TIMEOUT
        logger.debug(f"BackendClient initialized: base_url={self.base_url}, token={'set' if self.token else 'none'}")

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs,
    ) -> dict[str, Any]:
        """Make an HTTP request to the backend."""
        url = f"{self.base_url}{path}"
        logger.info(f"Backend API request: {method} {url}")

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            headers = kwargs.pop("headers", {})
            headers.update(self.get_auth_header())

            try:
                response = await client.request(method, url, headers=headers, **kwargs)

                logger.info(f"Backend API response: {response.status_code}")

                if response.status_code >= 400:
                    logger.error(f"Backend API error: {response.status_code} - {response.text}")
                    raise BackendAPIError(_error_detail(response), status_code=response.status_code)

                if not response.content:
                    return {}
                return response.json()

            except httpx.RequestError as e:
                logger.error(f"Backend API connection error: {e}")
                raise BackendAPIError(f"Connection error: {e}")
            except ValueError as e:
                logger.error(f"Backend API returned invalid JSON: {e}")
                raise BackendAPIError(f"Invalid response body: {e}")

    @staticmethod
    def _chat_path(device_id: str, chat_id: str) -> str:
        return f"/api/whatsapp/devices/{quote(device_id, safe='')}/chats/{quote(chat_id, safe='')}"

    # Reads

    async def get_chats(self, device_id: str) -> list[dict[str, Any]]:
        """Get the device's chat list snapshot."""
        data = await self._request("GET", f"/api/whatsapp/devices/{quote(device_id, safe='')}/chats")
        return data.get("chats") or []

    async def get_history(
        self, device_id: str, chat_id: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Get a chat's message history (the backend returns newest first)."""
        params = {"limit": limit} if limit else None
        data = await self._request("GET", f"{self._chat_path(device_id, chat_id)}/history", params=params)
        return data.get("messages") or []

    async def get_agents(self) -> list[dict[str, Any]]:
        """Get the agents available for handover."""
        data = await self._request("GET", "/api/whatsapp/agents")
        return data.get("agents") or []

    # Sends

    async def send_message(
        self,
        session_id: str,
        recipient: str,
        message: str,
        agent_id: str | None = None,
        agent_name: str | None = None,
        image_url: str | None = None,
    ) -> dict[str, Any]:
        """Send a text message, or an image by URL when ``image_url`` is set."""
        payload: dict[str, Any] = {
            "sessionId": session_id,
            "recipient": recipient,
            "message": message,
            "agentId": agent_id,
            "agentName": agent_name,
        }
        if image_url:
            payload["imageUrl"] = image_url
        return await self._request("POST", "/api/whatsapp/send", json=payload)

    async def send_image(
        self,
        session_id: str,
        recipient: str,
        content: bytes,
        filename: str,
        content_type: str = "image/jpeg",
        caption: str = "",
        agent_id: str | None = None,
        agent_name: str | None = None,
    ) -> dict[str, Any]:
        """Upload and send an image file."""
        data = {
            "sessionId": session_id,
            "recipient": recipient,
            "caption": caption,
            "agentId": agent_id or "",
            "agentName": agent_name or "",
        }
        files = {"file": (filename, content, content_type)}
        return await self._request("POST", "/api/whatsapp/send/image", data=data, files=files)

    # Ownership and settings

    async def takeover_chat(
        self, device_id: str, chat_id: str, agent_id: str, agent_name: str | None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._chat_path(device_id, chat_id)}/takeover",
            json={"agentId": agent_id, "agentName": agent_name},
        )

    async def release_chat(self, device_id: str, chat_id: str) -> dict[str, Any]:
        return await self._request("POST", f"{self._chat_path(device_id, chat_id)}/release")

    async def handover_chat(
        self,
        device_id: str,
        chat_id: str,
        to_agent_id: str,
        to_agent_name: str | None,
        notes: str | None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._chat_path(device_id, chat_id)}/handover",
            json={"toAgentId": to_agent_id, "toAgentName": to_agent_name, "notes": notes},
        )

    async def update_chat_settings(
        self, device_id: str, chat_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        """Update status, priority, labels or notes of a chat."""
        return await self._request(
            "PUT",
            f"{self._chat_path(device_id, chat_id)}/settings",
            json=changes,
        )

    # Event stream

    def get_websocket_url(self, token: str | None = None) -> str:
        """Get the event stream URL, carrying the token as a query parameter."""
        token = token if token is not None else (settings.CONSOLE_WS_TOKEN or self.token)
        if settings.CONSOLE_WS_URL:
            base = settings.CONSOLE_WS_URL.rstrip("/")
        else:
            parsed = urlparse(self.base_url)
            ws_scheme = "wss" if parsed.scheme == "https" else "ws"
            base = f"{ws_scheme}://{parsed.netloc}/ws"
        if not token:
            return base
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{urlencode({'token': token})}"

    def get_auth_header(self) -> dict[str, str]:
        """Get the bearer authentication header, if a token is configured."""
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


def _error_detail(response: httpx.Response) -> str:
    """Extract the backend's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return response.text
