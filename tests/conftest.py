"""Pytest configuration and fixtures."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from wpp_console.schemas import ConnectionState, Conversation
from wpp_console.services import ConsoleSession, ConversationStore, Reconciler

DEVICE_ID = "device-1"
SESSION_ID = "session-1"
CHAT_ID = "6281234567890@s.whatsapp.net"
OTHER_CHAT_ID = "6289876543210@s.whatsapp.net"


@pytest.fixture
def chat_id() -> str:
    return CHAT_ID


@pytest.fixture
def sample_chat_data() -> dict[str, Any]:
    """Sample chat settings row as returned by the backend."""
    return {
        "chatId": CHAT_ID,
        "contactName": "Budi Santoso",
        "phoneNumber": "6281234567890",
        "lastMessageContent": "Halo, stok masih ada?",
        "lastMessageTimestamp": "2024-01-25T00:00:00.000Z",
        "humanTakeover": False,
        "assignedAgentId": None,
        "status": "open",
        "priority": "normal",
        "labels": '["vip"]',
        "notes": None,
    }


@pytest.fixture
def sample_chats() -> list[Conversation]:
    """A mixed set of chats for list projection tests."""
    return [
        Conversation(chat_id="1@s.whatsapp.net", contact_name="Alice", last_message_timestamp=300),
        Conversation(
            chat_id="2@s.whatsapp.net",
            contact_name="Bob",
            assigned_agent_id="7",
            assigned_agent_name="Agent Seven",
            status="pending",
            last_message_timestamp=100,
        ),
        Conversation(
            chat_id="3@s.whatsapp.net",
            name="Charlie Store",
            phone_number="628111",
            assigned_agent_id="9",
            priority="urgent",
            last_message_timestamp=200,
        ),
        Conversation(chat_id="4@s.whatsapp.net", contact_name="Dewi", status="resolved"),
    ]


@pytest.fixture
def store(sample_chat_data) -> ConversationStore:
    """Store holding the sample chat, opened."""
    store = ConversationStore(DEVICE_ID)
    store.upsert_chat(Conversation.model_validate(sample_chat_data))
    store.set_open_chat(CHAT_ID)
    return store


@pytest.fixture
def reconciler(store) -> Reconciler:
    return Reconciler(store)


@pytest.fixture
def wire_message() -> Callable[..., dict[str, Any]]:
    """Factory for provider-shaped messages as delivered in messages.upsert."""

    def make(
        message_id: str,
        text: str | None = "Hello",
        from_me: bool = False,
        timestamp: Any = 1706140800,
        chat: str = CHAT_ID,
        image_caption: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        if image_caption is not None:
            body = {"imageMessage": {"caption": image_caption}}
        else:
            body = {"conversation": text}
        return {
            "key": {"remoteJid": chat, "fromMe": from_me, "id": message_id},
            "message": body,
            "messageTimestamp": timestamp,
            "pushName": None if from_me else "Budi",
            **extra,
        }

    return make


@pytest.fixture
def upsert_frame() -> Callable[..., dict[str, Any]]:
    """Factory for messages.upsert frames."""

    def make(*messages: dict[str, Any]) -> dict[str, Any]:
        return {"type": "messages.upsert", "data": {"messages": list(messages)}}

    return make


@pytest.fixture
def mock_backend_client():
    """Mock backend client for testing."""
    client = MagicMock()
    client.token = "test-token"
    client.get_chats = AsyncMock(return_value=[])
    client.get_history = AsyncMock(return_value=[])
    client.get_agents = AsyncMock(return_value=[{"id": 8, "name": "Bob"}])
    client.send_message = AsyncMock(return_value={"success": True, "whatsappMessageId": "WA-1"})
    client.send_image = AsyncMock(
        return_value={"success": True, "messageId": "WA-IMG-1", "mediaUrl": "https://cdn.example/img.jpg"}
    )
    client.takeover_chat = AsyncMock()
    client.release_chat = AsyncMock()
    client.handover_chat = AsyncMock()
    client.update_chat_settings = AsyncMock(return_value={})
    client.get_websocket_url = MagicMock(return_value="ws://localhost:3001/ws?token=test-token")
    return client


@pytest.fixture
def mock_transport():
    """Mock event transport for testing."""
    transport = MagicMock()
    transport.state = ConnectionState.CONNECTED
    transport.listen = AsyncMock()
    transport.close = AsyncMock()
    return transport


@pytest.fixture
def console(mock_backend_client, mock_transport, sample_chat_data) -> ConsoleSession:
    """Console session with the sample chat loaded, not started."""
    session = ConsoleSession(
        DEVICE_ID,
        SESSION_ID,
        agent_id="7",
        agent_name="Alice",
        backend=mock_backend_client,
        transport=mock_transport,
    )
    session.store.upsert_chat(Conversation.model_validate(sample_chat_data))
    return session
