"""In-memory store of chats and the open chat's messages."""

import bisect
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from wpp_console.schemas.conversation import Conversation
from wpp_console.schemas.message import Message

logger = logging.getLogger(__name__)

ChangeListener = Callable[[int], None]


class ConversationStore:
    """Single mutable source of truth for one console session.

    Holds every known chat summary and the message list of the open chat only;
    switching chats drops the previous chat's messages. All methods are
    synchronous: they run to completion between two events of the loop, so a
    mutation can never interleave with another one.
    """

    def __init__(self, device_id: str | None = None):
        self.device_id = device_id
        self.chats: dict[str, Conversation] = {}
        self.open_chat_id: str | None = None
        self.open_generation = 0
        self.messages: list[Message] = []
        self.version = 0
        self._listeners: list[ChangeListener] = []

    # Change notification

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener called with the new version after each mutation."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(self.version)
            except Exception as e:
                logger.error(f"Store listener failed: {e}")

    # Chats

    def get_chat(self, chat_id: str) -> Conversation | None:
        return self.chats.get(chat_id)

    def upsert_chat(self, patch: Conversation | Mapping[str, Any]) -> Conversation:
        """Merge a partial conversation into the existing one, creating it if absent.

        ``patch`` is either a Conversation (only its explicitly set fields are
        merged) or a mapping keyed by field names or wire aliases.
        """
        if isinstance(patch, Conversation):
            updates = patch.model_dump(exclude_unset=True)
        else:
            updates = _to_field_names(patch)

        chat_id = updates.get("chat_id")
        if not chat_id:
            raise ValueError("chat patch without chat_id")

        existing = self.chats.get(chat_id)
        base = existing.model_dump() if existing else {"device_id": self.device_id}
        chat = Conversation.model_validate({**base, **updates})

        self.chats[chat_id] = chat
        self._changed()
        return chat

    def replace_chats(self, chats: Iterable[Conversation]) -> None:
        """Merge a snapshot of chats; chats missing from the snapshot are kept."""
        for chat in chats:
            existing = self.chats.get(chat.chat_id)
            if existing:
                updates = chat.model_dump(exclude_unset=True)
                if _is_older(updates.get("last_message_timestamp"), existing.last_message_timestamp):
                    # The stream already delivered a newer message
                    updates.pop("last_message_timestamp")
                    updates.pop("last_message_content", None)
                merged = {**existing.model_dump(), **updates}
                chat = Conversation.model_validate(merged)
            self.chats[chat.chat_id] = chat
        self._changed()

    # Open chat

    def set_open_chat(self, chat_id: str | None) -> int:
        """Switch the active conversation and drop the previous message list.

        Returns:
            Generation token identifying this switch, used to discard history
            responses that resolve after the user moved on.
        """
        self.open_chat_id = chat_id
        self.open_generation += 1
        self.messages = []
        self._changed()
        return self.open_generation

    def is_current(self, chat_id: str, generation: int) -> bool:
        """Check whether ``chat_id`` opened as ``generation`` is still open."""
        return self.open_chat_id == chat_id and self.open_generation == generation

    def is_open(self, chat_id: str | None) -> bool:
        return chat_id is not None and chat_id == self.open_chat_id

    # Messages (open chat only)

    def set_messages(self, chat_id: str, messages: list[Message]) -> bool:
        if not self.is_open(chat_id):
            return False
        self.messages = list(messages)
        self._changed()
        return True

    def append_messages(self, chat_id: str, messages: Iterable[Message]) -> bool:
        """Append messages to the end of the open chat's list."""
        if not self.is_open(chat_id):
            return False
        self.messages.extend(messages)
        self._changed()
        return True

    def insert_message(self, chat_id: str, message: Message) -> bool:
        """Insert a message at its timestamp position (after equal timestamps)."""
        if not self.is_open(chat_id):
            return False
        timestamps = [m.timestamp for m in self.messages]
        index = bisect.bisect_right(timestamps, message.timestamp)
        self.messages.insert(index, message)
        self._changed()
        return True

    def remove_message(
        self, chat_id: str, predicate: Callable[[Message], bool]
    ) -> Message | None:
        """Remove and return the first (oldest) message matching ``predicate``."""
        if not self.is_open(chat_id):
            return None
        for index, message in enumerate(self.messages):
            if predicate(message):
                del self.messages[index]
                self._changed()
                return message
        return None

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None

    def has_message(self, message_id: str) -> bool:
        return self.find_message(message_id) is not None

    def replace_message(self, message_id: str, **updates: Any) -> Message | None:
        """Replace a message with an updated copy; None if it is not present."""
        for index, message in enumerate(self.messages):
            if message.message_id == message_id:
                updated = message.model_copy(update=updates)
                self.messages[index] = updated
                self._changed()
                return updated
        return None


def _to_field_names(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Map wire aliases (camelCase) in a patch to Conversation field names."""
    aliases = {
        field.alias: name
        for name, field in Conversation.model_fields.items()
        if field.alias
    }
    return {aliases.get(key, key): value for key, value in patch.items()}


def _is_older(candidate: float | None, current: float | None) -> bool:
    return candidate is not None and current is not None and candidate < current
