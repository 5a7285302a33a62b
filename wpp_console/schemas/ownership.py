"""Ownership schemas: who is responding to a conversation."""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wpp_console.schemas.common import WireModel, optional_id


class Owner(BaseModel):
    """Either the AI (no agent) or a specific human agent."""

    model_config = ConfigDict(frozen=True)

    agent_id: str | None = None
    agent_name: str | None = None

    @classmethod
    def ai(cls) -> "Owner":
        return cls()

    @classmethod
    def human(cls, agent_id: str, agent_name: str | None = None) -> "Owner":
        if not agent_id:
            raise ValueError("a human owner requires an agent id")
        return cls(agent_id=str(agent_id), agent_name=agent_name)

    @property
    def is_ai(self) -> bool:
        return self.agent_id is None

    def __str__(self) -> str:
        return "AI" if self.is_ai else f"Human({self.agent_id})"


class OwnershipFragment(WireModel):
    """Ownership fields returned by the takeover/release/handover endpoints."""

    human_takeover: bool | None = None
    assigned_agent_id: str | None = None
    assigned_agent_name: str | None = None
    notes: str | None = None

    @field_validator("assigned_agent_id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str | None:
        return optional_id(value)

    @classmethod
    def from_response(cls, payload: dict[str, Any] | None) -> "OwnershipFragment":
        """Extract the fragment from a backend response body.

        The backend wraps the updated row in ``chatSettings`` (or ``chat``);
        a bare fragment is accepted too.
        """
        payload = payload or {}
        body = payload.get("chatSettings") or payload.get("chat") or payload
        return cls.model_validate(body)

    def resolve(self, expected: Owner) -> Owner:
        """Resolve the authoritative owner, using ``expected`` for omitted fields.

        Raises:
            ValueError: If the fragment claims a takeover with no agent
        """
        if self.human_takeover is False:
            return Owner.ai()

        fields = self.model_fields_set
        agent_id = self.assigned_agent_id if "assigned_agent_id" in fields else expected.agent_id
        if agent_id is None:
            if self.human_takeover:
                raise ValueError("takeover reported without an assigned agent")
            return Owner.ai()

        if "assigned_agent_name" in fields:
            agent_name = self.assigned_agent_name
        elif agent_id == expected.agent_id:
            agent_name = expected.agent_name
        else:
            agent_name = None
        return Owner.human(agent_id, agent_name)


class OwnershipTransition(BaseModel):
    """Audit record of a takeover, release or handover."""

    chat_id: str
    action: str
    from_owner: Owner
    to_owner: Owner
    actor_agent_id: str | None = None
    notes: str | None = None
    timestamp: float = Field(default_factory=time.time)
