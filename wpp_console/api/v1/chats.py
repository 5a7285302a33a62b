"""Chat list, messaging and ownership endpoints."""

from fastapi import APIRouter, File, Form, Query, UploadFile

from wpp_console.api.deps import Console
from wpp_console.core.exceptions import ConflictError
from wpp_console.schemas import (
    ChatSettingsUpdate,
    Conversation,
    ConversationList,
    FilterTab,
    HandoverRequest,
    Message,
    MessageList,
    OwnershipTransition,
    SendProductRequest,
    SendTextRequest,
)
from wpp_console.services import ConsoleSession

router = APIRouter(prefix="/devices/{device_id}", tags=["chats"])


def _require_open(console: ConsoleSession, chat_id: str) -> None:
    if not console.store.is_open(console.resolve_chat_id(chat_id)):
        raise ConflictError(f"Chat '{chat_id}' is not the open chat")


def _message_list(console: ConsoleSession) -> MessageList:
    items = list(console.store.messages)
    return MessageList(chat_id=console.store.open_chat_id, items=items, total=len(items))


@router.get("/chats", response_model=ConversationList)
async def list_chats(
    console: Console,
    tab: FilterTab = Query(FilterTab.ALL),
    q: str | None = Query(None, description="Search contact name, phone number or chat id"),
):
    """List chats for the current agent, filtered by tab and search query."""
    return console.chat_list(tab, q)


@router.get("/chats/{chat_id}", response_model=Conversation)
async def get_chat(chat_id: str, console: Console):
    """Get a chat summary."""
    return console.get_chat(chat_id)


@router.post("/chats/{chat_id}/open", response_model=MessageList)
async def open_chat(chat_id: str, console: Console):
    """Open a chat and load its message history."""
    await console.open_chat(chat_id)
    return _message_list(console)


@router.get("/open/messages", response_model=MessageList)
async def get_open_messages(console: Console):
    """Get the open chat's messages, including pending sends."""
    return _message_list(console)


@router.post("/chats/{chat_id}/messages", response_model=Message, status_code=201)
async def send_text(chat_id: str, data: SendTextRequest, console: Console):
    """Send a text message to the open chat."""
    _require_open(console, chat_id)
    return await console.send_text(data.text)


@router.post("/chats/{chat_id}/images", response_model=Message, status_code=201)
async def send_image(
    chat_id: str,
    console: Console,
    file: UploadFile = File(...),
    caption: str = Form(""),
):
    """Upload and send an image to the open chat."""
    _require_open(console, chat_id)
    content = await file.read()
    return await console.send_image(
        content,
        filename=file.filename or "image.jpg",
        content_type=file.content_type or "image/jpeg",
        caption=caption,
    )


@router.post("/chats/{chat_id}/products", response_model=Message, status_code=201)
async def send_product(chat_id: str, data: SendProductRequest, console: Console):
    """Send a product card to the open chat."""
    _require_open(console, chat_id)
    return await console.send_product(data.product)


@router.post("/chats/{chat_id}/takeover", response_model=OwnershipTransition)
async def takeover_chat(chat_id: str, console: Console):
    """Take over a chat from the AI (or another agent)."""
    return await console.takeover(chat_id)


@router.post("/chats/{chat_id}/release", response_model=OwnershipTransition)
async def release_chat(chat_id: str, console: Console):
    """Release a chat back to the AI."""
    return await console.release(chat_id)


@router.post("/chats/{chat_id}/handover", response_model=OwnershipTransition)
async def handover_chat(chat_id: str, data: HandoverRequest, console: Console):
    """Hand a chat over to another agent."""
    return await console.handover(
        chat_id,
        data.target_agent_id,
        data.target_agent_name,
        data.notes,
    )


@router.patch("/chats/{chat_id}/settings", response_model=Conversation)
async def update_chat_settings(chat_id: str, data: ChatSettingsUpdate, console: Console):
    """Update a chat's status, priority, labels or notes."""
    return await console.update_settings(chat_id, data)
