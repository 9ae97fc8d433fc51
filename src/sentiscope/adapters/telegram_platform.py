"""Telegram bot adapter.

Implements the PlatformClient port with Telethon logged in as a bot. Bots
cannot enumerate dialogs or read chat history, so chats are discovered from
incoming messages and backfill is reported as unavailable.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from telethon import TelegramClient, events

from sentiscope.adapters.telegram_mapper import build_inbound_message, channel_info_from_entity
from sentiscope.client import build_telegram_client
from sentiscope.core.errors import HistoryUnavailableError, InvalidCredentialError
from sentiscope.core.models import TELEGRAM, ChannelInfo, InboundMessage
from sentiscope.core.ports import MessageListener

LOGGER = logging.getLogger(__name__)

HISTORY_UNAVAILABLE = (
    "Telegram bots cannot read chat history. Messages are collected as they arrive "
    "once the bot is a member of the chat."
)


def bot_id_from_token(token: str) -> str:
    """The numeric bot id that prefixes a Telegram bot token."""

    return token.split(":", 1)[0]


class TelegramPlatformClient:
    platform = TELEGRAM

    def __init__(
        self,
        known_chat_ids: Callable[[], list[str]],
        client_factory: Callable[[str], TelegramClient] = build_telegram_client,
    ) -> None:
        self._known_chat_ids = known_chat_ids
        self._client_factory = client_factory
        self._client: Optional[TelegramClient] = None
        # listener -> Telethon callback, so removal targets the same callable.
        self._handlers: dict[MessageListener, Callable] = {}

    async def connect(self, credential: str) -> None:
        bot_id = bot_id_from_token(credential)
        client = self._client_factory(bot_id)
        self._client = client
        await client.start(bot_token=credential)
        me = await client.get_me()
        if me is not None and str(me.id) != bot_id:
            raise InvalidCredentialError(f"Telegram session is logged in as bot {me.id}, not {bot_id}")
        LOGGER.info("Telegram bot logged in as @%s", getattr(me, "username", None) or getattr(me, "id", "?"))

    async def disconnect(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        for handler in self._handlers.values():
            client.remove_event_handler(handler)
        self._handlers.clear()
        await client.disconnect()

    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    def add_message_listener(self, listener: MessageListener) -> None:
        if listener in self._handlers:
            return
        client = self._require_client()

        async def handler(event) -> None:
            inbound = await build_inbound_message(event.message)
            await listener(inbound)

        client.add_event_handler(handler, events.NewMessage(incoming=True))
        self._handlers[listener] = handler

    def remove_message_listener(self, listener: MessageListener) -> None:
        handler = self._handlers.pop(listener, None)
        if handler is not None and self._client is not None:
            self._client.remove_event_handler(handler)

    def listener_count(self) -> int:
        return len(self._handlers)

    def _require_client(self) -> TelegramClient:
        if self._client is None:
            raise ConnectionError("Telegram client is not connected")
        return self._client

    async def fetch_channel_list(self, group_id: str) -> list[ChannelInfo]:
        """Refresh metadata for chats the bot has already seen."""

        client = self._require_client()
        channels = []
        for chat_id in self._known_chat_ids():
            try:
                entity = await client.get_entity(int(chat_id))
            except Exception as exc:
                LOGGER.warning("Could not refresh Telegram chat %s: %s", chat_id, exc)
                continue
            channels.append(channel_info_from_entity(chat_id, entity))
        return channels

    async def fetch_message_page(
        self, channel_id: str, before_id: Optional[str], page_size: int
    ) -> list[InboundMessage]:
        raise HistoryUnavailableError(HISTORY_UNAVAILABLE)
