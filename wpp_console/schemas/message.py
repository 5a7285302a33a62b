"""Message schemas."""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator

from wpp_console.schemas.common import WireModel, to_epoch_seconds

PENDING_PREFIX = "temp-"


class TextContent(BaseModel):
    """Plain text message."""

    kind: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """Image with an optional caption."""

    kind: Literal["image"] = "image"
    caption: str = ""


class ProductCardContent(BaseModel):
    """Product card, delivered as an image with caption or as plain text."""

    kind: Literal["product"] = "product"
    product_name: str
    text: str
    image_url: str | None = None


MessageContent = Annotated[
    Union[TextContent, ImageContent, ProductCardContent],
    Field(discriminator="kind"),
]


class Message(WireModel):
    """A message in the open conversation.

    Until the provider assigns an id, a locally sent message is *pending* and
    carries a ``temp-<n>`` id.
    """

    message_id: str
    chat_id: str
    from_me: bool = False
    content: MessageContent
    media_url: str | None = None

    is_ai_generated: bool = False
    agent_name: str | None = None
    sender_display_name: str | None = None

    timestamp: float = 0.0

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> float:
        return to_epoch_seconds(value) or 0.0

    @property
    def is_pending(self) -> bool:
        return self.message_id.startswith(PENDING_PREFIX)

    @property
    def is_image(self) -> bool:
        """Whether the message travels as an image on WhatsApp."""
        content = self.content
        if isinstance(content, ImageContent):
            return True
        return isinstance(content, ProductCardContent) and content.image_url is not None

    @property
    def text(self) -> str | None:
        """Text body used for content matching (None for images)."""
        content = self.content
        if isinstance(content, TextContent):
            return content.text
        if isinstance(content, ProductCardContent) and content.image_url is None:
            return content.text
        return None

    @property
    def preview(self) -> str:
        """Short content used as the chat's last message preview."""
        content = self.content
        if isinstance(content, TextContent):
            return content.text
        if isinstance(content, ImageContent):
            return content.caption or "[image]"
        return content.text

    @classmethod
    def from_wire(cls, raw: dict[str, Any], chat_id: str | None = None) -> "Message":
        """Build a message from a stream or history payload.

        Both the provider's raw shape (``key``/``message``/``messageTimestamp``)
        and the backend's flat history shape (``messageId``/``content``/...)
        are accepted.

        Raises:
            ValueError: If the payload has no message id or chat id
        """
        key = raw.get("key") or {}
        body = raw.get("message") or {}

        message_id = key.get("id") or raw.get("messageId") or raw.get("id")
        resolved_chat_id = key.get("remoteJid") or raw.get("chatId") or raw.get("remoteJid") or chat_id
        if not message_id:
            raise ValueError("message without id")
        if not resolved_chat_id:
            raise ValueError(f"message {message_id} without chat id")

        if "fromMe" in key:
            from_me = bool(key["fromMe"])
        elif "fromMe" in raw:
            from_me = bool(raw["fromMe"])
        else:
            from_me = raw.get("direction") == "outgoing"

        message_type = raw.get("messageType")
        image = body.get("imageMessage")
        text = body.get("conversation") or (body.get("extendedTextMessage") or {}).get("text")

        if image is not None or message_type == "image":
            content: dict[str, Any] = {
                "kind": "image",
                "caption": (image or {}).get("caption") or raw.get("caption") or raw.get("content") or "",
            }
        elif message_type == "product":
            content = {
                "kind": "product",
                "product_name": raw.get("productName") or "",
                "text": text or raw.get("content") or "",
                "image_url": raw.get("mediaUrl"),
            }
        else:
            content = {"kind": "text", "text": text or raw.get("content") or raw.get("body") or ""}

        return cls.model_validate(
            {
                "message_id": str(message_id),
                "chat_id": resolved_chat_id,
                "from_me": from_me,
                "content": content,
                "media_url": raw.get("mediaUrl"),
                "is_ai_generated": bool(raw.get("isAiGenerated", False)),
                "agent_name": raw.get("agentName") if from_me else None,
                "sender_display_name": None if from_me else (raw.get("pushName") or raw.get("senderName")),
                "timestamp": raw.get("messageTimestamp") or raw.get("timestamp"),
            }
        )
