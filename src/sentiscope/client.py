"""Chat platform client factories for sentiscope.

The lifecycle manager builds a fresh low-level client for every connection
attempt, so these factories are called on each (re)connect rather than once
at import time. Bot tokens are never read here; they come from stored
settings.
"""

from __future__ import annotations

import logging
import os

import discord
from dotenv import load_dotenv
from telethon import TelegramClient

from sentiscope import settings

LOGGER = logging.getLogger(__name__)


def build_discord_client(client_class: type[discord.Client] = discord.Client) -> discord.Client:
    """Create a gateway client with the guild, guild message and content intents."""

    intents = discord.Intents.default()
    intents.guilds = True
    intents.guild_messages = True
    # Privileged; must also be enabled in the Developer Portal.
    intents.message_content = True
    LOGGER.info("Initializing Discord client")
    return client_class(intents=intents)


def build_telegram_client(bot_id: str = "") -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read TELEGRAM_API_ID/TELEGRAM_API_HASH via python-dotenv to keep
    secrets out of the repo. The bot token is supplied later to ``start``.

    Each bot gets its own session file. Telethon skips the bot login when a
    session is already authorized, so a shared file would keep serving the
    previous bot after the token changes.
    """

    load_dotenv()

    api_id = os.getenv("TELEGRAM_API_ID")
    api_hash = os.getenv("TELEGRAM_API_HASH")
    session_name = os.getenv("TELEGRAM_SESSION_NAME", "sentiscope-bot")
    if bot_id:
        session_name = f"{session_name}-{bot_id}"
    if not os.path.isabs(session_name):
        session_name = os.path.join(settings.PROJECT_ROOT, session_name)

    # Fail fast on missing credentials; the lifecycle reports this as a connect error.
    if not api_id or not api_hash:
        raise RuntimeError("Missing TELEGRAM_API_ID or TELEGRAM_API_HASH in environment")

    LOGGER.info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash)
