"""Application entry point for the sentiscope service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import uvicorn
from art import tprint
from dotenv import load_dotenv

from sentiscope import settings
from sentiscope.adapters.discord_platform import DiscordPlatformClient
from sentiscope.adapters.openai_classifier import build_remote_classifier
from sentiscope.adapters.owner_lock import FileOwnerLock
from sentiscope.adapters.sqlite_storage import SQLiteStorage
from sentiscope.adapters.telegram_platform import TelegramPlatformClient
from sentiscope.api import create_app
from sentiscope.core.analytics import SentimentAnalytics
from sentiscope.core.backfill import HistoryBackfill
from sentiscope.core.classifier import SentimentClassifier
from sentiscope.core.config import BackfillConfig, LifecycleConfig
from sentiscope.core.lifecycle import ConnectionLifecycle
from sentiscope.core.models import DISCORD, PLATFORMS, TELEGRAM
from sentiscope.core.ports import Classifier
from sentiscope.core.processor import MessageProcessor
from sentiscope.core.reconciler import ChannelReconciler
from sentiscope.core.token_validation import validator_for
from sentiscope.service import PlatformService

NAME = "SENTISCOPE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def add_secret(self, secret: str) -> None:
        # Bot tokens arrive at runtime through the settings API.
        if secret and secret not in self._secrets:
            self._secrets = sorted([*self._secrets, secret], key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> Optional[_RedactingFormatter]:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return None

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/sentiscope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return None

    logging.basicConfig(level=level, handlers=handlers)
    # Let uvicorn and discord.py log through our handlers and redaction.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "discord", "telethon"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
    return formatter


def _lifecycle_config() -> LifecycleConfig:
    return LifecycleConfig(
        connect_timeout=settings.CONNECT_TIMEOUT_SECONDS,
        settle_delay=settings.SETTLE_DELAY_SECONDS,
    )


def _backfill_config() -> BackfillConfig:
    return BackfillConfig(
        page_size=settings.BACKFILL_PAGE_SIZE,
        page_delay=settings.BACKFILL_PAGE_DELAY_SECONDS,
        message_delay=settings.BACKFILL_MESSAGE_DELAY_SECONDS,
        long_delay=settings.BACKFILL_LONG_DELAY_SECONDS,
        short_pause_every=settings.BACKFILL_SHORT_PAUSE_EVERY,
        long_pause_every=settings.BACKFILL_LONG_PAUSE_EVERY,
        default_max_messages=settings.BACKFILL_DEFAULT_MAX_MESSAGES,
    )


def build_services(
    storage: SQLiteStorage,
    classifier: Classifier,
    formatter: Optional[_RedactingFormatter] = None,
) -> dict[str, PlatformService]:
    """Wire one lifecycle and one service per platform."""

    on_credential = formatter.add_secret if formatter is not None else None
    processor = MessageProcessor(repository=storage, classifier=classifier)

    discord_lifecycle = ConnectionLifecycle(
        DiscordPlatformClient(),
        validator_for(DISCORD),
        config=_lifecycle_config(),
    )
    # Telegram rejects a second poller on the same token, so one process owns it.
    telegram_lifecycle = ConnectionLifecycle(
        TelegramPlatformClient(
            known_chat_ids=lambda: [record.channel_id for record in storage.list_channel_records(TELEGRAM)]
        ),
        validator_for(TELEGRAM),
        owner_lock=FileOwnerLock(settings.TELEGRAM_LOCK_PATH, stale_after=settings.LOCK_STALE_SECONDS),
        config=_lifecycle_config(),
    )

    services = {}
    for lifecycle in (discord_lifecycle, telegram_lifecycle):
        services[lifecycle.platform] = PlatformService(
            repository=storage,
            lifecycle=lifecycle,
            processor=processor,
            reconciler=ChannelReconciler(storage, lifecycle),
            backfill=HistoryBackfill(lifecycle, processor, config=_backfill_config()),
            on_credential=on_credential,
        )
    return services


async def _autostart(services: dict[str, PlatformService]) -> None:
    for service in services.values():
        try:
            await service.autostart()
        except Exception:
            logging.getLogger(__name__).exception("Autostart failed for %s", service.platform)


async def _serve_async(services: dict[str, PlatformService], app) -> None:
    logger = logging.getLogger(__name__)
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT, log_config=None)
    )
    # Bots connect in the background so the dashboard is reachable immediately.
    autostart = asyncio.create_task(_autostart(services))
    try:
        await server.serve()
    finally:
        if not autostart.done():
            autostart.cancel()
        for service in services.values():
            await service.lifecycle.teardown()
        logger.info("All platform connections closed")


def _run() -> None:
    _print_banner()
    formatter = _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting sentiscope")

    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()

    if formatter is not None:
        for platform in PLATFORMS:
            for stored in storage.list_settings(platform):
                if stored.credential:
                    formatter.add_secret(stored.credential)

    classifier = SentimentClassifier(build_remote_classifier(settings.OPENAI_API_KEY, settings.OPENAI_MODEL))
    services = build_services(storage, classifier, formatter)
    analytics = SentimentAnalytics(storage)

    if not settings.DASHBOARD_PASSWORD:
        logger.warning("DASHBOARD_PASSWORD is not set; every API request will be rejected")
    app = create_app(services, analytics, settings.DASHBOARD_USERNAME, settings.DASHBOARD_PASSWORD)

    logger.info("Serving dashboard API on %s:%s", settings.SERVER_HOST, settings.SERVER_PORT)
    asyncio.run(_serve_async(services, app))


def _check_token(platform: str, token: str) -> int:
    validation = validator_for(platform)(token)
    if validation.is_valid:
        print(f"{platform} token looks valid.")
        if validation.message:
            print(f"Warning: {validation.message}")
        return 0
    print(f"{platform} token is invalid: {validation.message}")
    return 1


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="sentiscope")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Start the API server and connect active bots")
    check_parser = subparsers.add_parser("check-token", help="Validate a bot token without connecting")
    check_parser.add_argument("platform", choices=PLATFORMS)
    check_parser.add_argument("token")

    args = parser.parse_args(argv)
    if args.command == "check-token":
        raise SystemExit(_check_token(args.platform, args.token))
    _run()


if __name__ == "__main__":
    main()
