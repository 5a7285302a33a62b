"""Reconciliation of optimistic sends with authoritative stream messages."""

import itertools
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from wpp_console.core.jid import same_chat
from wpp_console.core.telemetry import get_tracer
from wpp_console.schemas.message import PENDING_PREFIX, Message, MessageContent
from wpp_console.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# History entries this much older than a pending send may still confirm it
CLOCK_SKEW_TOLERANCE = 60.0


@dataclass
class ReconcileResult:
    """Outcome of applying one batch of authoritative messages."""

    inserted: list[Message] = field(default_factory=list)
    confirmed: dict[str, str] = field(default_factory=dict)  # temp id -> message id
    duplicates: int = 0
    touched_chats: set[str] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.touched_chats)


class Reconciler:
    """Merges stream messages into the store.

    Outbound messages go through three states:

    - Pending: appended with a ``temp-<n>`` id as soon as the user sends.
    - Confirmed: the authoritative copy arrived and replaced the pending one,
      either through the id returned by the send call or by content matching.
    - Orphaned: the send call failed; the pending entry is dropped.
    """

    def __init__(self, store: ConversationStore):
        self.store = store
        self._counter = itertools.count(1)
        # authoritative message id -> temp id, learned from send responses
        self._bindings: dict[str, str] = {}

    def reset(self) -> None:
        """Forget send bindings (the open chat's messages were replaced)."""
        self._bindings.clear()

    # Pending lifecycle

    def add_pending(
        self,
        chat_id: str,
        content: MessageContent,
        agent_name: str | None = None,
        media_url: str | None = None,
        timestamp: float | None = None,
    ) -> Message:
        """Create a pending message and append it to the open chat right away.

        The pending entry is never stamped earlier than the last message, so
        the list stays ordered when the server clock runs ahead of ours.
        """
        stamp = timestamp if timestamp is not None else time.time()
        if self.store.is_open(chat_id) and self.store.messages:
            stamp = max(stamp, self.store.messages[-1].timestamp)

        message = Message(
            message_id=f"{PENDING_PREFIX}{next(self._counter)}",
            chat_id=chat_id,
            from_me=True,
            content=content,
            media_url=media_url,
            agent_name=agent_name,
            timestamp=stamp,
        )
        if not self.store.append_messages(chat_id, [message]):
            logger.debug(f"Pending {message.message_id} created for non-open chat {chat_id}")
        return message

    def drop_pending(self, chat_id: str, temp_id: str) -> Message | None:
        """Remove a pending message whose send failed."""
        for message_id, bound in list(self._bindings.items()):
            if bound == temp_id:
                del self._bindings[message_id]
        return self.store.remove_message(chat_id, lambda m: m.message_id == temp_id)

    def bind_pending(self, chat_id: str, temp_id: str, message_id: str) -> None:
        """Record the authoritative id returned for a pending send.

        If the stream already delivered that message, the pending entry is
        dropped right away.
        """
        if self.store.has_message(message_id):
            self.store.remove_message(chat_id, lambda m: m.message_id == temp_id)
            return
        if self.store.has_message(temp_id):
            self._bindings[message_id] = temp_id

    # Stream events

    def apply_upsert(self, messages: Iterable[Message]) -> ReconcileResult:
        """Merge a batch of authoritative messages, in order."""
        result = ReconcileResult()
        with tracer.start_as_current_span("reconcile.upsert") as span:
            for message in messages:
                self._apply_one(message, result)
            span.set_attribute("reconcile.inserted", len(result.inserted))
            span.set_attribute("reconcile.confirmed", len(result.confirmed))
            span.set_attribute("reconcile.duplicates", result.duplicates)
        return result

    def _apply_one(self, message: Message, result: ReconcileResult) -> None:
        open_chat_id = self._open_chat_for(message)
        if open_chat_id is not None and self.store.has_message(message.message_id):
            result.duplicates += 1
            logger.debug(f"Duplicate message {message.message_id} discarded")
            return

        touched = self._touch_chat(message)
        if touched:
            result.touched_chats.add(touched)

        if open_chat_id is None:
            return

        replaced = self._take_pending_for(open_chat_id, message)
        if replaced is not None:
            updates = {}
            if message.agent_name is None and replaced.agent_name:
                updates["agent_name"] = replaced.agent_name
            if message.media_url is None and replaced.media_url:
                updates["media_url"] = replaced.media_url
            if updates:
                message = message.model_copy(update=updates)
            result.confirmed[replaced.message_id] = message.message_id

        self.store.insert_message(open_chat_id, message)
        result.inserted.append(message)

    def _take_pending_for(self, chat_id: str, message: Message) -> Message | None:
        temp_id = self._bindings.pop(message.message_id, None)
        if temp_id is not None:
            removed = self.store.remove_message(chat_id, lambda m: m.message_id == temp_id)
            if removed is not None:
                return removed

        if not message.from_me:
            return None

        bound = set(self._bindings.values())
        if message.is_image:
            return self.store.remove_message(
                chat_id,
                lambda m: m.is_pending and m.is_image and m.message_id not in bound,
            )

        text = message.text
        if text is None:
            return None
        return self.store.remove_message(
            chat_id,
            lambda m: m.is_pending
            and not m.is_image
            and m.text == text
            and m.message_id not in bound,
        )

    def apply_update(self, message_id: str, media_url: str | None) -> bool:
        """Patch a delivered message's media URL; unknown ids are ignored."""
        if media_url is None:
            return False
        updated = self.store.replace_message(message_id, media_url=media_url)
        if updated is None:
            logger.debug(f"message_update for unknown message {message_id} ignored")
            return False
        return True

    def apply_history(self, chat_id: str, messages: Iterable[Message]) -> bool:
        """Merge a fetched history snapshot into the open chat.

        Messages that arrived from the stream while the fetch was in flight
        are kept, duplicates are dropped, and pending sends whose
        authoritative copy is already in the history are confirmed.
        """
        if not self.store.is_open(chat_id):
            return False

        history: list[Message] = []
        known: set[str] = set()
        for message in messages:
            if message.message_id not in known:
                known.add(message.message_id)
                history.append(message)

        extra = [m for m in self.store.messages if m.message_id not in known]

        confirmed = {self._bindings.pop(mid) for mid in known if mid in self._bindings}
        used: set[str] = set()
        kept: list[Message] = []
        for message in extra:
            if message.message_id in confirmed:
                continue
            if message.is_pending:
                match = self._history_match(message, history, used)
                if match is not None:
                    used.add(match.message_id)
                    continue
            kept.append(message)

        merged = sorted(history + kept, key=lambda m: m.timestamp)
        return self.store.set_messages(chat_id, merged)

    def _history_match(
        self, pending: Message, history: list[Message], used: set[str]
    ) -> Message | None:
        earliest = pending.timestamp - CLOCK_SKEW_TOLERANCE
        for candidate in history:
            if not candidate.from_me or candidate.message_id in used:
                continue
            if candidate.timestamp < earliest:
                continue
            if pending.is_image and candidate.is_image:
                return candidate
            if not pending.is_image and pending.text is not None and candidate.text == pending.text:
                return candidate
        return None

    # Chat summaries

    def _open_chat_for(self, message: Message) -> str | None:
        open_chat_id = self.store.open_chat_id
        if open_chat_id is None:
            return None
        open_chat = self.store.get_chat(open_chat_id)
        phone = open_chat.phone_number if open_chat else None
        if same_chat(message.chat_id, open_chat_id, phone):
            return open_chat_id
        return None

    def resolve_chat_id(self, jid: str) -> str:
        """Find the known chat a JID belongs to, or the JID itself."""
        if jid in self.store.chats:
            return jid
        for chat in self.store.chats.values():
            if same_chat(jid, chat.chat_id, chat.phone_number):
                return chat.chat_id
        return jid

    def _touch_chat(self, message: Message) -> str | None:
        """Update the chat summary, creating the chat on first contact."""
        if message.chat_id.endswith("@broadcast"):
            return None

        chat_id = self.resolve_chat_id(message.chat_id)
        chat = self.store.get_chat(chat_id)
        if chat and chat.last_message_timestamp and chat.last_message_timestamp > message.timestamp:
            return None

        patch = {
            "chat_id": chat_id,
            "last_message_content": message.preview,
            "last_message_timestamp": message.timestamp,
        }
        if chat is None:
            logger.info(f"New conversation {chat_id} seen on the event stream")
            if not message.from_me and message.sender_display_name:
                patch["contact_name"] = message.sender_display_name
        self.store.upsert_chat(patch)
        return chat_id
