"""Conversation (chat) schemas."""

from enum import Enum
from typing import Any

from pydantic import Field, field_validator, model_validator

from wpp_console.core.jid import jid_user
from wpp_console.schemas.common import WireModel, optional_id, parse_labels, to_epoch_seconds
from wpp_console.schemas.ownership import Owner


class ChatStatus(str, Enum):
    """Chat workflow status."""

    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ChatPriority(str, Enum):
    """Chat priority level."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class FilterTab(str, Enum):
    """Chat list tabs."""

    ALL = "all"
    UNASSIGNED = "unassigned"
    HUMAN = "human"
    MINE = "mine"
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    URGENT = "urgent"


class Conversation(WireModel):
    """One contact's conversation with a device.

    Ownership is derived from ``assigned_agent_id``: a conversation is owned by
    a human exactly when an agent is assigned, otherwise the AI responds.
    """

    chat_id: str
    device_id: str | None = None

    contact_name: str | None = None
    name: str | None = None
    phone_number: str | None = None
    profile_picture_url: str | None = None
    last_message_content: str | None = None
    last_message_timestamp: float | None = None

    human_takeover: bool = False
    assigned_agent_id: str | None = None
    assigned_agent_name: str | None = None

    status: ChatStatus = ChatStatus.OPEN
    priority: ChatPriority = ChatPriority.NORMAL
    labels: list[str] = Field(default_factory=list)
    notes: str = ""

    # AI-derived, read-only here
    purchase_intent_score: float | None = None
    purchase_intent_stage: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _takeover_by_fallback(cls, data: Any) -> Any:
        # Older rows record the owner only in humanTakeoverBy
        if isinstance(data, dict) and (data.get("humanTakeover") or data.get("human_takeover")):
            if not data.get("assignedAgentId") and not data.get("assigned_agent_id"):
                taken_by = data.get("humanTakeoverBy") or data.get("human_takeover_by")
                if taken_by:
                    data = {**data, "assignedAgentId": taken_by}
        return data

    @field_validator("device_id", "assigned_agent_id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str | None:
        return optional_id(value)

    @field_validator("last_message_timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> float | None:
        return to_epoch_seconds(value)

    @field_validator("labels", mode="before")
    @classmethod
    def _normalize_labels(cls, value: Any) -> list[str]:
        return parse_labels(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _normalize_notes(cls, value: Any) -> str:
        return value or ""

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return value or ChatStatus.OPEN

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return value or ChatPriority.NORMAL

    @model_validator(mode="after")
    def _enforce_ownership(self) -> "Conversation":
        # Derived values must not count as explicitly set when merging patches
        fields_set = set(self.model_fields_set)
        self.human_takeover = self.assigned_agent_id is not None
        if not self.human_takeover:
            self.assigned_agent_name = None
        if not self.phone_number:
            self.phone_number = jid_user(self.chat_id) or None
        object.__setattr__(self, "__pydantic_fields_set__", fields_set)
        return self

    @property
    def owner(self) -> Owner:
        """Current owner of the conversation."""
        if self.assigned_agent_id is None:
            return Owner.ai()
        return Owner.human(self.assigned_agent_id, self.assigned_agent_name)


class ConversationList(WireModel):
    """Projected chat list."""

    items: list[Conversation]
    total: int
    tab: FilterTab
    query: str = ""
