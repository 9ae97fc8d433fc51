from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

from sentiscope.adapters.telegram_mapper import (
    build_inbound_message,
    channel_info_from_entity,
    entity_kind,
    entity_title,
)
from sentiscope.core.models import NO_GROUP, TELEGRAM


class DummyMessage:
    def __init__(self, sender, chat, text: str = "hello world") -> None:
        self.id = 77
        self.chat_id = -100123
        self.sender_id = getattr(sender, "id", None)
        self.raw_text = text
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._sender = sender
        self._chat = chat

    async def get_sender(self):
        return self._sender

    async def get_chat(self):
        return self._chat


def test_build_inbound_message_from_user() -> None:
    sender = SimpleNamespace(id=5, first_name="Ada", last_name="Lovelace", bot=False)
    chat = SimpleNamespace(id=123, title="Builders", megagroup=True)

    message = asyncio.run(build_inbound_message(DummyMessage(sender, chat)))

    assert message.platform == TELEGRAM
    assert message.message_id == "77"
    assert message.channel_id == "-100123"
    assert message.group_id == NO_GROUP
    assert message.author_id == "5"
    assert message.author_display_name == "Ada Lovelace"
    assert message.channel_name == "Builders"
    assert message.content == "hello world"
    assert not message.author_is_bot


def test_build_inbound_message_flags_bots() -> None:
    sender = SimpleNamespace(id=9, first_name="Helper", bot=True)
    chat = SimpleNamespace(id=123, title="Builders", megagroup=True)

    message = asyncio.run(build_inbound_message(DummyMessage(sender, chat)))

    assert message.author_is_bot


def test_channel_posts_fall_back_to_chat() -> None:
    chat = SimpleNamespace(id=123, title="Announcements", broadcast=True)

    message = asyncio.run(build_inbound_message(DummyMessage(None, chat, text="")))

    assert message.author_id == "-100123"
    assert message.author_display_name == "Announcements"
    assert message.content == ""


def test_entity_kind_and_title() -> None:
    assert entity_kind(SimpleNamespace(title="A", megagroup=True)) == "group"
    assert entity_kind(SimpleNamespace(title="B", broadcast=True)) == "channel"
    assert entity_kind(SimpleNamespace(title="C")) == "group"
    assert entity_kind(SimpleNamespace(first_name="D", bot=False)) == "private"
    assert entity_title(SimpleNamespace(username="someone")) == "@someone"
    assert entity_title(SimpleNamespace(id=42)) == "42"


def test_channel_info_from_entity() -> None:
    info = channel_info_from_entity("-100123", SimpleNamespace(title="Builders", megagroup=True))

    assert info.channel_id == "-100123"
    assert info.display_name == "Builders"
    assert info.group_id == NO_GROUP
    assert info.kind == "group"
