"""Discord gateway adapter.

Implements the PlatformClient port with discord.py. A new gateway client is
built for every connect so a torn-down session never leaks handlers into the
next one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import discord

from sentiscope.adapters.discord_mapper import build_inbound_message, can_read_channel, channel_info_from_text_channel
from sentiscope.client import build_discord_client
from sentiscope.core.models import DISCORD, ChannelInfo, InboundMessage
from sentiscope.core.ports import MessageListener

LOGGER = logging.getLogger(__name__)


class UnknownGuildError(LookupError):
    """The bot is not a member of the requested guild."""

    def __init__(self, guild_id: str) -> None:
        super().__init__(f"Unknown Guild: {guild_id}")
        self.guild_id = guild_id


class _GatewayClient(discord.Client):
    """discord.Client that forwards ready/message events to the adapter."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.ready_event = asyncio.Event()
        self.message_callback: Optional[Callable[[discord.Message], Any]] = None

    async def on_ready(self) -> None:
        LOGGER.info("Discord bot logged in as %s", self.user)
        self.ready_event.set()

    async def on_message(self, message: discord.Message) -> None:
        if self.message_callback is not None:
            await self.message_callback(message)


class DiscordPlatformClient:
    platform = DISCORD

    def __init__(self, client_factory: Callable[..., discord.Client] = build_discord_client) -> None:
        self._client_factory = client_factory
        self._client: Optional[_GatewayClient] = None
        self._runner: Optional[asyncio.Task] = None
        self._listeners: list[MessageListener] = []

    async def connect(self, credential: str) -> None:
        client = self._client_factory(_GatewayClient)
        client.message_callback = self._on_message
        self._client = client
        self._runner = asyncio.create_task(client.start(credential))
        ready_waiter = asyncio.create_task(client.ready_event.wait())

        # The lifecycle may cancel this wait on timeout; the waiter must not outlive it.
        try:
            done, _ = await asyncio.wait({self._runner, ready_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            ready_waiter.cancel()
        if self._runner in done:
            # Surfaces LoginFailure, PrivilegedIntentsRequired and friends.
            self._runner.result()
            raise ConnectionError("Discord gateway closed before becoming ready")

    async def disconnect(self) -> None:
        client, runner = self._client, self._runner
        self._client = None
        self._runner = None
        if client is not None and not client.is_closed():
            await client.close()
        if runner is not None and not runner.done():
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass
            except Exception:
                LOGGER.debug("Discord runner ended with an error during shutdown", exc_info=True)

    def is_connected(self) -> bool:
        client = self._client
        return client is not None and client.is_ready() and not client.is_closed()

    def add_message_listener(self, listener: MessageListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def listener_count(self) -> int:
        return len(self._listeners)

    async def _on_message(self, message: discord.Message) -> None:
        if message.guild is None:
            return
        inbound = build_inbound_message(message)
        for listener in list(self._listeners):
            await listener(inbound)

    def _require_client(self) -> discord.Client:
        if self._client is None:
            raise ConnectionError("Discord client is not connected")
        return self._client

    def _get_guild(self, group_id: str) -> discord.Guild:
        client = self._require_client()
        try:
            guild = client.get_guild(int(group_id))
        except ValueError:
            guild = None
        if guild is None:
            raise UnknownGuildError(group_id)
        return guild

    async def fetch_channel_list(self, group_id: str) -> list[ChannelInfo]:
        guild = self._get_guild(group_id)
        return [channel_info_from_text_channel(channel) for channel in guild.text_channels]

    async def fetch_message_page(
        self, channel_id: str, before_id: Optional[str], page_size: int
    ) -> list[InboundMessage]:
        client = self._require_client()
        channel = client.get_channel(int(channel_id)) or await client.fetch_channel(int(channel_id))
        if not isinstance(channel, discord.abc.Messageable):
            raise ValueError(f"Channel {channel_id} is not a text channel")

        before = discord.Object(id=int(before_id)) if before_id else None
        # history() yields newest first by default.
        return [build_inbound_message(message) async for message in channel.history(limit=page_size, before=before)]

    def check_guild_access(self, group_id: str) -> dict[str, Any]:
        """Report the guild name, missing guild-level permissions and readable text channels."""

        guild = self._get_guild(group_id)
        me = guild.me
        permissions = me.guild_permissions
        missing = []
        if not permissions.view_channel:
            missing.append("View Channels")
        if not permissions.read_message_history:
            missing.append("Read Message History")

        accessible = [channel for channel in guild.text_channels if can_read_channel(channel)]
        return {
            "guild_name": guild.name,
            "missing_permissions": missing,
            "accessible_channels": len(accessible),
            "total_channels": len(guild.text_channels),
        }
