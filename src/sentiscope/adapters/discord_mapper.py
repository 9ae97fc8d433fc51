"""Discord-to-core mapping adapter."""

from __future__ import annotations

import discord

from sentiscope.core.models import DISCORD, NO_GROUP, ChannelInfo, InboundMessage


def build_inbound_message(message: discord.Message) -> InboundMessage:
    guild = message.guild
    author = message.author
    return InboundMessage(
        platform=DISCORD,
        message_id=str(message.id),
        channel_id=str(message.channel.id),
        group_id=str(guild.id) if guild is not None else NO_GROUP,
        author_id=str(author.id),
        author_display_name=getattr(author, "display_name", None) or author.name,
        content=message.content or "",
        timestamp=message.created_at,
        author_is_bot=bool(author.bot),
        channel_name=getattr(message.channel, "name", "") or "",
    )


def can_read_channel(channel: discord.TextChannel) -> bool:
    """True when the bot can both see the channel and read its history."""

    me = channel.guild.me
    if me is None:
        return False
    permissions = channel.permissions_for(me)
    return bool(permissions.view_channel and permissions.read_message_history)


def channel_info_from_text_channel(channel: discord.TextChannel) -> ChannelInfo:
    return ChannelInfo(
        channel_id=str(channel.id),
        display_name=channel.name,
        group_id=str(channel.guild.id),
        group_name=channel.guild.name,
        kind="text",
        is_accessible=can_read_channel(channel),
    )
