"""Filtered, searched and sorted views of the chat list."""

from collections.abc import Iterable

from wpp_console.schemas.conversation import ChatPriority, Conversation, ConversationList, FilterTab

_STATUS_TABS = {FilterTab.OPEN, FilterTab.PENDING, FilterTab.RESOLVED, FilterTab.CLOSED}


def _matches_tab(chat: Conversation, tab: FilterTab, current_user_id: str | None) -> bool:
    if tab == FilterTab.ALL:
        return True
    if tab == FilterTab.UNASSIGNED:
        return chat.assigned_agent_id is None
    if tab in (FilterTab.HUMAN, FilterTab.MINE):
        return current_user_id is not None and chat.assigned_agent_id == str(current_user_id)
    if tab == FilterTab.URGENT:
        return chat.priority == ChatPriority.URGENT
    if tab in _STATUS_TABS:
        return chat.status.value == tab.value
    return False


def _matches_query(chat: Conversation, query: str) -> bool:
    haystack = (chat.contact_name, chat.name, chat.phone_number, chat.chat_id)
    return any(query in value.lower() for value in haystack if value)


def _sort_key(chat: Conversation) -> tuple[int, float, str]:
    if chat.last_message_timestamp is None:
        return (1, 0.0, chat.chat_id)
    return (0, -chat.last_message_timestamp, chat.chat_id)


def project_conversations(
    chats: Iterable[Conversation],
    filter_tab: FilterTab | str = FilterTab.ALL,
    search_query: str | None = None,
    current_user_id: str | None = None,
) -> list[Conversation]:
    """Select, search and order chats for display.

    Args:
        chats: Chats to project; not modified
        filter_tab: Tab to filter by
        search_query: Case-insensitive substring matched against contact
            name, name, phone number and chat id
        current_user_id: Agent viewing the list, for the ``human`` tab

    Returns:
        Matching chats, most recent activity first
    """
    tab = FilterTab(filter_tab)
    query = (search_query or "").strip().lower()

    selected = [
        chat
        for chat in chats
        if _matches_tab(chat, tab, current_user_id) and (not query or _matches_query(chat, query))
    ]
    return sorted(selected, key=_sort_key)


def project_list(
    chats: Iterable[Conversation],
    filter_tab: FilterTab | str = FilterTab.ALL,
    search_query: str | None = None,
    current_user_id: str | None = None,
) -> ConversationList:
    """Project chats into the list response model."""
    items = project_conversations(chats, filter_tab, search_query, current_user_id)
    return ConversationList(
        items=items,
        total=len(items),
        tab=FilterTab(filter_tab),
        query=search_query or "",
    )
