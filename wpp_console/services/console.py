"""Console session: one agent operating one device's inbox."""

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from wpp_console.config import settings
from wpp_console.core.exceptions import (
    ActionFailed,
    ActionValidationError,
    BackendAPIError,
    NotFoundError,
    TransportConnectionError,
)
from wpp_console.core.jid import to_jid
from wpp_console.schemas.console import ChatSettingsUpdate, SessionInfo
from wpp_console.schemas.conversation import Conversation, ConversationList, FilterTab
from wpp_console.schemas.events import (
    ConnectionState,
    MessagesUpsertEvent,
    MessageUpdateEvent,
    SessionStatusEvent,
    TransportEvent,
)
from wpp_console.schemas.message import ImageContent, Message, ProductCardContent, TextContent
from wpp_console.schemas.ownership import OwnershipTransition
from wpp_console.schemas.product import Product
from wpp_console.services.backend_client import BackendClient
from wpp_console.services.conversation_store import ConversationStore
from wpp_console.services.event_journal import EventJournal
from wpp_console.services.event_transport import EventTransport
from wpp_console.services.ownership import OwnershipStateMachine
from wpp_console.services.projector import project_list
from wpp_console.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


def sent_message_id(response: dict[str, Any] | None) -> str | None:
    """Extract the provider message id from a send response."""
    if not response:
        return None
    message_id = (
        response.get("whatsappMessageId")
        or (response.get("key") or {}).get("id")
        or response.get("messageId")
    )
    return str(message_id) if message_id else None


class ConsoleSession:
    """State and actions of one agent's console on one device.

    Events from the transport are queued and applied one at a time by a
    single consumer task. User actions write their optimistic change to the
    store before their first ``await``, so the store never observes a
    half-applied action.
    """

    def __init__(
        self,
        device_id: str,
        session_id: str,
        agent_id: str,
        agent_name: str,
        backend: BackendClient,
        transport: EventTransport | None = None,
        journal: EventJournal | None = None,
    ):
        self.device_id = device_id
        self.session_id = session_id
        self.agent_id = str(agent_id)
        self.agent_name = agent_name
        self.backend = backend

        self.store = ConversationStore(device_id)
        self.reconciler = Reconciler(self.store)
        self.ownership = OwnershipStateMachine(self.store, backend, device_id)

        self.transport = transport or EventTransport(
            session_id,
            backend.get_websocket_url(),
            token=settings.CONSOLE_WS_TOKEN or backend.token,
            device_id=device_id,
            journal=journal,
        )
        self.inbox: asyncio.Queue[TransportEvent] = asyncio.Queue(maxsize=settings.EVENT_QUEUE_SIZE)
        self.device_status: str | None = None
        self.last_error: str | None = None

        self._consumer_task: asyncio.Task | None = None
        self._listener_task: asyncio.Task | None = None
        self._resync_task: asyncio.Task | None = None

    @property
    def connection_state(self) -> ConnectionState:
        return self.transport.state

    # Lifecycle

    async def start(self) -> None:
        """Load the chat list and start receiving events."""
        await self.load_chats()

        self.transport.on_event(self._enqueue)
        self.transport.on_state_change(self._on_state_change)

        self._consumer_task = asyncio.create_task(self._consume())
        self._listener_task = asyncio.create_task(self._listen())
        logger.info(f"Console started for device {self.device_id} (agent {self.agent_id})")

    async def stop(self) -> None:
        """Close the event stream and stop background tasks."""
        await self.transport.close()

        for task in (self._listener_task, self._resync_task, self._consumer_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info(f"Console stopped for device {self.device_id}")

    async def _listen(self) -> None:
        try:
            await self.transport.listen()
        except TransportConnectionError as e:
            self.last_error = e.detail
            logger.error(f"Event stream for device {self.device_id} stopped: {e.detail}")

    async def _enqueue(self, event: TransportEvent) -> None:
        # Blocks the receive loop while the inbox is full
        await self.inbox.put(event)

    async def _consume(self) -> None:
        while True:
            event = await self.inbox.get()
            try:
                self.apply_event(event)
            except Exception as e:
                logger.exception(f"Failed to apply {event.type} event on device {self.device_id}: {e}")
            finally:
                self.inbox.task_done()

    async def _on_state_change(self, state: ConnectionState, reconnected: bool) -> None:
        logger.info(f"Device {self.device_id} event stream {state.value} (reconnected={reconnected})")
        if state == ConnectionState.CONNECTED and reconnected:
            if self._resync_task is None or self._resync_task.done():
                self._resync_task = asyncio.create_task(self._resync_quietly())

    async def _resync_quietly(self) -> None:
        try:
            await self.resync()
        except BackendAPIError as e:
            logger.warning(f"Resync after reconnect failed for device {self.device_id}: {e.detail}")

    # Events

    def apply_event(self, event: TransportEvent) -> None:
        """Apply one transport event to the store."""
        session_id = getattr(event, "session_id", None)
        if session_id and session_id != self.session_id:
            logger.debug(f"Ignoring {event.type} for session {session_id}")
            return

        if isinstance(event, MessagesUpsertEvent):
            result = self.reconciler.apply_upsert(event.messages)
            if result.confirmed:
                logger.debug(f"Confirmed pending messages: {result.confirmed}")
        elif isinstance(event, MessageUpdateEvent):
            self.reconciler.apply_update(event.message_id, event.media_url)
        elif isinstance(event, SessionStatusEvent):
            self.device_status = event.status or event.type
            logger.info(f"Device {self.device_id} session status: {self.device_status}")
        else:
            logger.debug(f"Ignoring {event.type} event on device {self.device_id}")

    # Chats

    async def load_chats(self) -> int:
        """Merge the backend's chat list snapshot into the store."""
        raw_chats = await self.backend.get_chats(self.device_id)
        chats = []
        for raw in raw_chats:
            try:
                chats.append(Conversation.model_validate({**raw, "deviceId": self.device_id}))
            except ValidationError as e:
                logger.warning(f"Skipping invalid chat in snapshot: {e.error_count()} errors")
        self.store.replace_chats(chats)
        logger.info(f"Loaded {len(chats)} chats for device {self.device_id}")
        return len(chats)

    def chat_list(self, tab: FilterTab | str = FilterTab.ALL, query: str | None = None) -> ConversationList:
        """Project the chat list for this agent."""
        return project_list(self.store.chats.values(), tab, query, current_user_id=self.agent_id)

    def resolve_chat_id(self, chat_id: str) -> str:
        """Map a phone number or JID to the id of the known chat it addresses."""
        return self.reconciler.resolve_chat_id(to_jid(chat_id))

    def get_chat(self, chat_id: str) -> Conversation:
        chat = self.store.get_chat(self.resolve_chat_id(chat_id))
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        return chat

    async def open_chat(self, chat_id: str) -> bool:
        """Open a conversation and load its history.

        Returns:
            False if another chat was opened before the history arrived, in
            which case the response is discarded
        """
        chat_id = self.resolve_chat_id(chat_id)
        if self.store.get_chat(chat_id) is None:
            self.store.upsert_chat({"chat_id": chat_id})

        generation = self.store.set_open_chat(chat_id)
        self.reconciler.reset()

        try:
            raw_messages = await self.backend.get_history(self.device_id, chat_id)
        except BackendAPIError:
            if not self.store.is_current(chat_id, generation):
                return False
            raise

        if not self.store.is_current(chat_id, generation):
            logger.debug(f"Discarding stale history for chat {chat_id}")
            return False

        return self.reconciler.apply_history(chat_id, self._parse_history(chat_id, raw_messages))

    async def resync(self) -> None:
        """Re-fetch the chat list and the open chat's history."""
        logger.info(f"Resyncing device {self.device_id}")
        await self.load_chats()

        chat_id = self.store.open_chat_id
        if chat_id is None:
            return
        generation = self.store.open_generation
        raw_messages = await self.backend.get_history(self.device_id, chat_id)
        if not self.store.is_current(chat_id, generation):
            return
        self.reconciler.apply_history(chat_id, self._parse_history(chat_id, raw_messages))

    def _parse_history(self, chat_id: str, raw_messages: list[dict[str, Any]]) -> list[Message]:
        messages = []
        # Backend returns newest first
        for raw in reversed(raw_messages):
            try:
                messages.append(Message.from_wire(raw, chat_id=chat_id))
            except ValueError as e:
                logger.warning(f"Skipping invalid history message in chat {chat_id}: {e}")
        return messages

    def _require_open_chat(self) -> str:
        chat_id = self.store.open_chat_id
        if chat_id is None:
            raise ActionValidationError("no chat is open")
        return chat_id

    # Sends

    async def send_text(self, text: str) -> Message:
        """Send a text message to the open chat."""
        if not text or not text.strip():
            raise ActionValidationError("message text is empty")
        chat_id = self._require_open_chat()

        pending = self.reconciler.add_pending(chat_id, TextContent(text=text), agent_name=self.agent_name)
        try:
            response = await self.backend.send_message(
                self.session_id,
                recipient=chat_id,
                message=text,
                agent_id=self.agent_id,
                agent_name=self.agent_name,
            )
        except BackendAPIError as e:
            self.reconciler.drop_pending(chat_id, pending.message_id)
            logger.warning(f"Send to {chat_id} failed, pending {pending.message_id} dropped: {e.detail}")
            raise ActionFailed("send", e.detail) from e
        except asyncio.CancelledError:
            self.reconciler.drop_pending(chat_id, pending.message_id)
            raise

        self._bind(chat_id, pending, response)
        return pending

    async def send_image(
        self,
        content: bytes,
        filename: str,
        content_type: str = "image/jpeg",
        caption: str = "",
    ) -> Message:
        """Upload and send an image to the open chat."""
        if not content:
            raise ActionValidationError("image file is empty")
        chat_id = self._require_open_chat()

        pending = self.reconciler.add_pending(chat_id, ImageContent(caption=caption or ""), agent_name=self.agent_name)
        try:
            response = await self.backend.send_image(
                self.session_id,
                recipient=chat_id,
                content=content,
                filename=filename,
                content_type=content_type,
                caption=caption or "",
                agent_id=self.agent_id,
                agent_name=self.agent_name,
            )
        except BackendAPIError as e:
            self.reconciler.drop_pending(chat_id, pending.message_id)
            logger.warning(f"Image send to {chat_id} failed, pending {pending.message_id} dropped: {e.detail}")
            raise ActionFailed("send image", e.detail) from e
        except asyncio.CancelledError:
            self.reconciler.drop_pending(chat_id, pending.message_id)
            raise

        media_url = response.get("mediaUrl")
        if media_url:
            pending = self.store.replace_message(pending.message_id, media_url=media_url) or pending
        self._bind(chat_id, pending, response)
        return pending

    async def send_product(self, product: Product) -> Message:
        """Send a product card to the open chat, as an image when it has one."""
        chat_id = self._require_open_chat()

        card = product.format_card()
        image_url = product.primary_image
        pending = self.reconciler.add_pending(
            chat_id,
            ProductCardContent(product_name=product.name, text=card, image_url=image_url),
            agent_name=self.agent_name,
            media_url=image_url,
        )
        try:
            response = await self.backend.send_message(
                self.session_id,
                recipient=chat_id,
                message=card,
                agent_id=self.agent_id,
                agent_name=self.agent_name,
                image_url=image_url,
            )
        except BackendAPIError as e:
            self.reconciler.drop_pending(chat_id, pending.message_id)
            logger.warning(f"Product send to {chat_id} failed, pending {pending.message_id} dropped: {e.detail}")
            raise ActionFailed("send product", e.detail) from e
        except asyncio.CancelledError:
            self.reconciler.drop_pending(chat_id, pending.message_id)
            raise

        self._bind(chat_id, pending, response)
        return pending

    def _bind(self, chat_id: str, pending: Message, response: dict[str, Any]) -> None:
        message_id = sent_message_id(response)
        if message_id:
            self.reconciler.bind_pending(chat_id, pending.message_id, message_id)

    # Ownership

    async def takeover(self, chat_id: str) -> OwnershipTransition:
        return await self.ownership.takeover(self.resolve_chat_id(chat_id), self.agent_id, self.agent_name)

    async def release(self, chat_id: str) -> OwnershipTransition:
        return await self.ownership.release(self.resolve_chat_id(chat_id), actor_agent_id=self.agent_id)

    async def handover(
        self,
        chat_id: str,
        target_agent_id: str,
        target_agent_name: str | None = None,
        notes: str | None = None,
    ) -> OwnershipTransition:
        return await self.ownership.handover(
            self.resolve_chat_id(chat_id),
            target_agent_id,
            target_agent_name,
            notes,
            actor_agent_id=self.agent_id,
            actor_name=self.agent_name,
        )

    async def list_agents(self) -> list[dict[str, Any]]:
        """Agents available as handover targets."""
        return await self.backend.get_agents()

    # Settings

    async def update_settings(self, chat_id: str, update: ChatSettingsUpdate) -> Conversation:
        """Change status, priority, labels or notes of a chat.

        Raises:
            ActionValidationError: If nothing would change
            ActionFailed: If the backend rejects the update (the change is
                rolled back)
        """
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ActionValidationError("no settings to update")

        chat_id = self.resolve_chat_id(chat_id)
        chat = self.get_chat(chat_id)
        snapshot = {"chat_id": chat_id, **{field: getattr(chat, field) for field in changes}}
        self.store.upsert_chat({"chat_id": chat_id, **changes})

        try:
            response = await self.backend.update_chat_settings(
                self.device_id,
                chat_id,
                update.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude_none=True),
            )
        except BackendAPIError as e:
            self.store.upsert_chat(snapshot)
            logger.warning(f"Settings update of chat {chat_id} failed, rolled back: {e.detail}")
            raise ActionFailed("update settings", e.detail) from e
        except asyncio.CancelledError:
            self.store.upsert_chat(snapshot)
            raise

        body = (response or {}).get("chatSettings") or (response or {}).get("chat")
        if isinstance(body, dict):
            try:
                confirmed = ChatSettingsUpdate.model_validate(body).model_dump(exclude_none=True)
            except ValidationError as e:
                logger.warning(f"Ignoring invalid settings in response for chat {chat_id}: {e.error_count()} errors")
            else:
                confirmed = {key: value for key, value in confirmed.items() if key in changes}
                if confirmed:
                    self.store.upsert_chat({"chat_id": chat_id, **confirmed})

        return self.get_chat(chat_id)

    def info(self) -> SessionInfo:
        return SessionInfo(
            device_id=self.device_id,
            session_id=self.session_id,
            agent_id=self.agent_id,
            agent_name=self.agent_name,
            connection_state=self.connection_state,
            open_chat_id=self.store.open_chat_id,
            chat_count=len(self.store.chats),
            version=self.store.version,
        )
