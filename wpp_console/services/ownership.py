"""Conversation ownership: takeover, release and handover."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from wpp_console.core.exceptions import (
    ActionFailed,
    ActionValidationError,
    BackendAPIError,
    NotFoundError,
)
from wpp_console.core.telemetry import get_tracer
from wpp_console.schemas.conversation import Conversation
from wpp_console.schemas.ownership import Owner, OwnershipFragment, OwnershipTransition
from wpp_console.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class OwnershipBackend(Protocol):
    """Backend calls the ownership actions depend on."""

    async def takeover_chat(
        self, device_id: str, chat_id: str, agent_id: str, agent_name: str | None
    ) -> dict[str, Any]: ...

    async def release_chat(self, device_id: str, chat_id: str) -> dict[str, Any]: ...

    async def handover_chat(
        self,
        device_id: str,
        chat_id: str,
        to_agent_id: str,
        to_agent_name: str | None,
        notes: str | None,
    ) -> dict[str, Any]: ...


def handover_note(
    previous: str, actor: str, target: str, notes: str | None
) -> str:
    """Append a handover audit entry to a chat's notes."""
    if not notes:
        return previous
    entry = f"[Handover] {actor} → {target}: {notes}"
    return f"{previous}\n{entry}" if previous else entry


class OwnershipStateMachine:
    """Moves conversations between the AI and human agents.

    A conversation is owned either by the AI or by exactly one human agent.
    Each action writes the expected ownership to the store before calling the
    backend, then replaces it with the backend's answer, or restores the
    previous ownership fields and notes if the call fails.
    """

    def __init__(self, store: ConversationStore, backend: OwnershipBackend, device_id: str):
        self.store = store
        self.backend = backend
        self.device_id = device_id
        self._in_flight: set[str] = set()

    def is_busy(self, chat_id: str) -> bool:
        return chat_id in self._in_flight

    async def takeover(
        self, chat_id: str, agent_id: str, agent_name: str | None = None
    ) -> OwnershipTransition:
        """Assign the conversation to ``agent_id``, silencing the AI."""
        if not agent_id:
            raise ActionValidationError("takeover requires an agent id")

        chat = self._require_chat(chat_id)
        target = Owner.human(agent_id, agent_name)
        if chat.owner.agent_id == target.agent_id:
            logger.debug(f"Chat {chat_id} already owned by {target}, takeover skipped")
            return OwnershipTransition(
                chat_id=chat_id,
                action="takeover",
                from_owner=chat.owner,
                to_owner=chat.owner,
                actor_agent_id=target.agent_id,
            )

        return await self._transition(
            chat,
            "takeover",
            target,
            lambda: self.backend.takeover_chat(self.device_id, chat_id, target.agent_id, agent_name),
            actor_agent_id=target.agent_id,
        )

    async def release(self, chat_id: str, actor_agent_id: str | None = None) -> OwnershipTransition:
        """Hand the conversation back to the AI."""
        chat = self._require_chat(chat_id)
        return await self._transition(
            chat,
            "release",
            Owner.ai(),
            lambda: self.backend.release_chat(self.device_id, chat_id),
            actor_agent_id=actor_agent_id,
        )

    async def handover(
        self,
        chat_id: str,
        target_agent_id: str,
        target_agent_name: str | None = None,
        notes: str | None = None,
        actor_agent_id: str | None = None,
        actor_name: str | None = None,
    ) -> OwnershipTransition:
        """Transfer the conversation to another agent.

        Raises:
            ActionValidationError: If no target agent is given
            ActionFailed: If the backend rejects the handover
        """
        if not target_agent_id or not str(target_agent_id).strip():
            raise ActionValidationError("handover requires a target agent")

        chat = self._require_chat(chat_id)
        target = Owner.human(str(target_agent_id), target_agent_name)
        actor = actor_name or chat.assigned_agent_name or "AI"
        new_notes = handover_note(chat.notes, actor, target_agent_name or target.agent_id, notes)

        return await self._transition(
            chat,
            "handover",
            target,
            lambda: self.backend.handover_chat(
                self.device_id, chat_id, target.agent_id, target_agent_name, notes
            ),
            notes=new_notes,
            actor_agent_id=actor_agent_id,
            audit=notes,
        )

    async def _transition(
        self,
        chat: Conversation,
        action: str,
        target: Owner,
        call: Callable[[], Awaitable[dict[str, Any]]],
        notes: str | None = None,
        actor_agent_id: str | None = None,
        audit: str | None = None,
    ) -> OwnershipTransition:
        chat_id = chat.chat_id
        if chat_id in self._in_flight:
            raise ActionFailed(action, f"another ownership change for chat {chat_id} is in progress")

        previous = chat.owner
        snapshot = {
            "chat_id": chat_id,
            "assigned_agent_id": chat.assigned_agent_id,
            "assigned_agent_name": chat.assigned_agent_name,
            "notes": chat.notes,
        }

        self._in_flight.add(chat_id)
        try:
            self._write(chat_id, target, notes)

            with tracer.start_as_current_span(f"ownership.{action}") as span:
                span.set_attribute("chat.id", chat_id)
                span.set_attribute("ownership.from", str(previous))
                span.set_attribute("ownership.to", str(target))
                try:
                    response = await call()
                except BackendAPIError as e:
                    self.store.upsert_chat(snapshot)
                    logger.warning(f"{action} of chat {chat_id} failed, rolled back: {e.detail}")
                    raise ActionFailed(action, e.detail) from e
                except asyncio.CancelledError:
                    self.store.upsert_chat(snapshot)
                    logger.warning(f"{action} of chat {chat_id} cancelled, rolled back")
                    raise

                try:
                    fragment = OwnershipFragment.from_response(response)
                    confirmed = fragment.resolve(target)
                except ValueError as e:
                    self.store.upsert_chat(snapshot)
                    logger.error(f"{action} of chat {chat_id} returned invalid ownership: {e}")
                    raise ActionFailed(action, f"invalid ownership in response: {e}") from e

                self._write(
                    chat_id,
                    confirmed,
                    fragment.notes if fragment.notes is not None else notes,
                )
        finally:
            self._in_flight.discard(chat_id)

        logger.info(f"Chat {chat_id} {action}: {previous} -> {confirmed}")
        return OwnershipTransition(
            chat_id=chat_id,
            action=action,
            from_owner=previous,
            to_owner=confirmed,
            actor_agent_id=actor_agent_id,
            notes=audit,
        )

    def _write(self, chat_id: str, owner: Owner, notes: str | None) -> None:
        patch: dict[str, Any] = {
            "chat_id": chat_id,
            "human_takeover": not owner.is_ai,
            "assigned_agent_id": owner.agent_id,
            "assigned_agent_name": owner.agent_name,
        }
        if notes is not None:
            patch["notes"] = notes
        self.store.upsert_chat(patch)

    def _require_chat(self, chat_id: str) -> Conversation:
        chat = self.store.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        return chat
