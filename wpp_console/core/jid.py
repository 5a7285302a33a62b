"""WhatsApp JID helpers."""

USER_SUFFIX = "@s.whatsapp.net"


def jid_user(jid: str | None) -> str:
    """Return the user part of a JID.

    "5511999999999@s.whatsapp.net" -> "5511999999999"
    "5511999999999:42@s.whatsapp.net" -> "5511999999999"
    """
    if not jid:
        return ""
    user = jid.split("@")[0]
    return user.split(":")[0]


def to_jid(phone_or_jid: str) -> str:
    """Build a user JID from a phone number, leaving JIDs untouched."""
    if "@" in phone_or_jid:
        return phone_or_jid
    digits = "".join(filter(str.isdigit, phone_or_jid))
    return f"{digits}{USER_SUFFIX}"


def same_chat(jid: str | None, chat_id: str, phone_number: str | None = None) -> bool:
    """Check whether a message JID belongs to a chat.

    The provider may address the same contact with different JID domains, so
    the user parts are compared as well as the full JIDs.
    """
    if not jid:
        return False
    if jid == chat_id:
        return True
    user = jid_user(jid)
    if not user:
        return False
    return user == jid_user(chat_id) or (bool(phone_number) and user == phone_number)
