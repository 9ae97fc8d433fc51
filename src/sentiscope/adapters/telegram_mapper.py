"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

from typing import Any

from telethon.tl.custom import Message

from sentiscope.core.models import NO_GROUP, TELEGRAM, ChannelInfo, InboundMessage

GROUP_NAME = "Telegram"


def entity_kind(entity: Any) -> str:
    if getattr(entity, "megagroup", False) or getattr(entity, "gigagroup", False):
        return "group"
    if getattr(entity, "broadcast", False):
        return "channel"
    if getattr(entity, "first_name", None) is not None or getattr(entity, "bot", None) is not None:
        return "private"
    if getattr(entity, "title", None):
        return "group"
    return "chat"


def entity_title(entity: Any) -> str:
    title = getattr(entity, "title", None)
    if title:
        return str(title)
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    username = getattr(entity, "username", None)
    if username:
        return f"@{username}"
    entity_id = getattr(entity, "id", None)
    return str(entity_id or "unknown")


def channel_info_from_entity(chat_id: str, entity: Any) -> ChannelInfo:
    """Build ChannelInfo for a chat the bot already knows about."""

    return ChannelInfo(
        channel_id=chat_id,
        display_name=entity_title(entity),
        group_id=NO_GROUP,
        group_name=GROUP_NAME,
        kind=entity_kind(entity),
    )


async def build_inbound_message(message: Message) -> InboundMessage:
    """Build a core InboundMessage from a Telethon Message."""

    sender = await message.get_sender()
    chat = await message.get_chat()

    if sender is not None:
        display_name = entity_title(sender)
    else:
        # Anonymous admins and channel posts have no user sender.
        display_name = entity_title(chat) if chat is not None else "unknown"

    return InboundMessage(
        platform=TELEGRAM,
        message_id=str(message.id),
        channel_id=str(message.chat_id),
        group_id=NO_GROUP,
        author_id=str(message.sender_id or message.chat_id),
        author_display_name=display_name,
        content=message.raw_text or "",
        timestamp=message.date,
        author_is_bot=bool(getattr(sender, "bot", False)),
        channel_name=entity_title(chat) if chat is not None else str(message.chat_id),
    )
