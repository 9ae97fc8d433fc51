"""Operator-facing service, one instance per platform.

Wires the repository, lifecycle, pipeline, reconciler and backfill together
and turns every outcome into an OperationResult. Guard and connection
failures are reported, never raised; only the HTTP layer maps them to status
codes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from sentiscope.core.backfill import HistoryBackfill
from sentiscope.core.errors import InvalidCredentialError, NotReadyError
from sentiscope.core.lifecycle import ConnectionLifecycle, OwnerLockHeldError
from sentiscope.core.models import (
    ANALYSIS_FREQUENCIES,
    NO_GROUP,
    TELEGRAM,
    BackfillResult,
    BotSettings,
    ChannelRecord,
    ExcludedUser,
    InboundMessage,
    OperationResult,
)
from sentiscope.core.ports import MonitoringRepository
from sentiscope.core.processor import IngestOutcome, MessageProcessor
from sentiscope.core.reconciler import ChannelReconciler
from sentiscope.core.token_validation import validator_for

LOGGER = logging.getLogger(__name__)

TELEGRAM_GROUP_NAME = "Telegram"

_PLATFORM_TITLES = {"discord": "Discord", "telegram": "Telegram"}


@dataclass(frozen=True)
class SettingsUpdate:
    """Partial settings change; ``None`` keeps the stored value."""

    group_id: Optional[str] = None
    credential: Optional[str] = None
    is_active: Optional[bool] = None
    monitor_all_channels: Optional[bool] = None
    analysis_frequency: Optional[str] = None
    logging_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None


def mask_credential(credential: Optional[str]) -> Optional[str]:
    if not credential:
        return None
    return "****" + credential[-4:]


def settings_to_dict(settings: BotSettings) -> dict[str, Any]:
    return {
        "platform": settings.platform,
        "group_id": settings.group_id,
        "credential": mask_credential(settings.credential),
        "has_credential": bool(settings.credential),
        "is_active": settings.is_active,
        "monitor_all_channels": settings.monitor_all_channels,
        "analysis_frequency": settings.analysis_frequency,
        "logging_enabled": settings.logging_enabled,
        "notifications_enabled": settings.notifications_enabled,
        "updated_at": settings.updated_at.isoformat() if settings.updated_at else None,
    }


def channel_to_dict(record: ChannelRecord, monitored: bool) -> dict[str, Any]:
    return {
        "channel_id": record.channel_id,
        "name": record.display_name,
        "group_id": record.group_id,
        "group_name": record.group_name,
        "kind": record.kind,
        "is_accessible": record.is_accessible,
        "last_checked_at": record.last_checked_at.isoformat() if record.last_checked_at else None,
        "monitored": monitored,
    }


def excluded_user_to_dict(user: ExcludedUser) -> dict[str, Any]:
    return {
        "user_id": user.user_id,
        "group_id": user.group_id,
        "display_name": user.display_name,
        "reason": user.reason,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def backfill_result_to_dict(result: BackfillResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "processed_count": result.processed_count,
        "error_count": result.error_count,
        "message": result.message,
    }


def describe_connection_error(platform: str, exc: Optional[BaseException]) -> str:
    """Turn a connection failure into an operator-readable sentence."""

    title = _PLATFORM_TITLES.get(platform, platform)
    if exc is None:
        return f"Failed to connect to {title}."
    if isinstance(exc, OwnerLockHeldError):
        return (
            f"Another running instance already owns the {title} bot connection. "
            "Stop it, or wait for its lock to expire, and try again."
        )
    if isinstance(exc, InvalidCredentialError):
        return str(exc)

    text = str(exc)
    lowered = text.lower()
    if "unknown guild" in lowered:
        return (
            "The Discord server ID you provided could not be found. Please double-check the ID "
            "and make sure the bot has been invited to the server."
        )
    if (
        "invalid token" in lowered
        or "improper token" in lowered
        or "token is not valid" in lowered
        or "access_token_invalid" in lowered
        or "unauthorized" in lowered
    ):
        return f"The {title} bot token you provided is invalid. Please check the token and try again."
    if "privileged intent" in lowered or "disallowed intents" in lowered:
        return (
            "The bot requires privileged intents that are not enabled. Please enable "
            "'MESSAGE CONTENT INTENT' and 'SERVER MEMBERS INTENT' in the Discord Developer Portal."
        )
    if "409" in text and "conflict" in lowered:
        return "Multiple bot instances are running with the same token. Please try again in a few moments."
    if (
        isinstance(exc, (TimeoutError, ConnectionError))
        or "enotfound" in lowered
        or "etimedout" in lowered
    ):
        return "Network error. Please check your internet connection and try again."
    return f"Failed to connect to {title}: {text}"


class PlatformService:
    """Operator operations for a single platform."""

    def __init__(
        self,
        repository: MonitoringRepository,
        lifecycle: ConnectionLifecycle,
        processor: MessageProcessor,
        reconciler: ChannelReconciler,
        backfill: HistoryBackfill,
        on_credential: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._repository = repository
        self._lifecycle = lifecycle
        self._processor = processor
        self._reconciler = reconciler
        self._backfill = backfill
        self._on_credential = on_credential
        self._active_group: Optional[str] = None
        self._history_tasks: dict[str, asyncio.Task] = {}
        self._history_results: dict[str, BackfillResult] = {}
        lifecycle.subscribe(self.handle_inbound)

    @property
    def platform(self) -> str:
        return self._lifecycle.platform

    @property
    def lifecycle(self) -> ConnectionLifecycle:
        return self._lifecycle

    def _group(self, group_id: Optional[str]) -> Optional[str]:
        if self.platform == TELEGRAM:
            return NO_GROUP
        return group_id or None

    def _scope(self, group_id: Optional[str]) -> Optional[str]:
        """Requested group, falling back to the connected one."""

        group = self._group(group_id)
        return self._active_group if group is None else group

    # -- settings ---------------------------------------------------------

    def get_settings(self, group_id: Optional[str] = None) -> Optional[BotSettings]:
        return self._repository.get_active_settings(self.platform, self._group(group_id))

    async def update_settings(self, update: SettingsUpdate) -> OperationResult:
        group_id = self._group(update.group_id)
        if group_id is None:
            return OperationResult(False, "Server ID is required")

        existing = self._repository.get_settings(self.platform, group_id)
        base = existing or BotSettings(platform=self.platform, group_id=group_id)

        credential = base.credential
        warning = None
        if update.credential is not None:
            validation = validator_for(self.platform)(update.credential)
            if not validation.is_valid:
                return OperationResult(False, validation.message)
            credential = validation.cleaned
            warning = validation.message
        if not credential:
            return OperationResult(False, "Token is required")

        if update.analysis_frequency is not None and update.analysis_frequency not in ANALYSIS_FREQUENCIES:
            return OperationResult(False, f"Unknown analysis frequency: {update.analysis_frequency}")

        merged = replace(
            base,
            credential=credential,
            **{
                name: value
                for name, value in (
                    ("is_active", update.is_active),
                    ("monitor_all_channels", update.monitor_all_channels),
                    ("analysis_frequency", update.analysis_frequency),
                    ("logging_enabled", update.logging_enabled),
                    ("notifications_enabled", update.notifications_enabled),
                )
                if value is not None
            },
        )
        saved = self._repository.save_settings(merged)
        if self._on_credential is not None:
            self._on_credential(credential)
        LOGGER.info("Saved %s settings for group %r", self.platform, group_id)

        credential_changed = existing is None or existing.credential != saved.credential
        group_changed = self._active_group != group_id
        activated = existing is None or existing.is_active != saved.is_active

        if saved.is_active and (
            credential_changed or group_changed or activated or not self._lifecycle.is_ready()
        ):
            connected = await self._connect(saved)
            if not connected.success:
                return OperationResult(False, f"Settings saved, but the bot could not start. {connected.message}")
            message = "Settings updated. " + (connected.message or "")
        elif not saved.is_active and self._active_group == group_id:
            await self._lifecycle.teardown()
            self._active_group = None
            message = "Settings updated. Bot stopped."
        else:
            message = "Settings updated"

        if warning:
            message = f"{message} {warning}"
        return OperationResult(True, message.strip(), data=settings_to_dict(saved))

    # -- connection -------------------------------------------------------

    async def _connect(self, settings: BotSettings) -> OperationResult:
        ok = await self._lifecycle.initialize(settings.credential, force=True)
        if not ok:
            return OperationResult(False, describe_connection_error(self.platform, self._lifecycle.last_error))

        message = f"{_PLATFORM_TITLES.get(self.platform, self.platform)} bot connected"
        check_guild_access = getattr(self._lifecycle.client, "check_guild_access", None)
        if check_guild_access is not None:
            try:
                access = check_guild_access(settings.group_id)
            except Exception as exc:
                LOGGER.warning("Guild check failed for %s: %s", settings.group_id, exc)
                await self._lifecycle.teardown()
                return OperationResult(False, describe_connection_error(self.platform, exc))
            if access["missing_permissions"]:
                await self._lifecycle.teardown()
                return OperationResult(
                    False,
                    "Bot is missing required permissions: "
                    f"{', '.join(access['missing_permissions'])}. "
                    "Please update the bot's role permissions in Discord.",
                )
            message = (
                f'Connected to server "{access["guild_name"]}". '
                f"Bot can access {access['accessible_channels']} text channels."
            )

        self._active_group = settings.group_id
        try:
            await self._reconciler.reconcile(settings.group_id)
        except Exception as exc:
            LOGGER.warning("Channel refresh after connect failed for %s: %s", self.platform, exc)
        return OperationResult(True, message)

    async def start(self, group_id: Optional[str] = None) -> OperationResult:
        settings = self._repository.get_active_settings(self.platform, self._group(group_id))
        if settings is None or not settings.credential:
            return OperationResult(False, "No settings found. Please configure the bot first.")

        result = await self._connect(settings)
        if result.success and not settings.is_active:
            self._repository.save_settings(replace(settings, is_active=True))
        return result

    async def stop(self, group_id: Optional[str] = None) -> OperationResult:
        await self._lifecycle.teardown()
        target = self._scope(group_id)
        self._active_group = None
        settings = (
            self._repository.get_settings(self.platform, target)
            if target is not None
            else self._repository.get_active_settings(self.platform)
        )
        if settings is not None and settings.is_active:
            self._repository.save_settings(replace(settings, is_active=False))
        return OperationResult(True, "Bot stopped")

    def status(self) -> dict[str, Any]:
        status = self._lifecycle.status()
        status["group_id"] = self._active_group
        return status

    async def autostart(self) -> OperationResult:
        """Connect using stored settings at process start."""

        candidates = [
            settings for settings in self._repository.list_settings(self.platform)
            if settings.is_active and settings.credential
        ]
        if not candidates:
            LOGGER.info("No active %s settings; not starting the bot", self.platform)
            return OperationResult(False, "No active settings")

        result = OperationResult(False, "No active settings")
        for settings in candidates:
            result = await self._connect(settings)
            if result.success:
                LOGGER.info("Autostarted %s bot for group %r", self.platform, settings.group_id)
                return result
            LOGGER.warning("Autostart for %s group %r failed: %s", self.platform, settings.group_id, result.message)
        return result

    # -- channels ---------------------------------------------------------

    def _monitoring_view(self, records: list[ChannelRecord], group_id: str) -> list[dict[str, Any]]:
        monitored = set(self._repository.get_monitored_channel_ids(self.platform, group_id))
        settings = self._repository.get_settings(self.platform, group_id)
        monitor_all = bool(settings and settings.is_active and settings.monitor_all_channels)
        return [channel_to_dict(record, monitor_all or record.channel_id in monitored) for record in records]

    def list_channels(self, group_id: Optional[str] = None) -> list[dict[str, Any]]:
        group = self._scope(group_id)
        if group is None:
            return []
        records = sorted(
            self._repository.list_channel_records(self.platform, group),
            key=lambda record: (record.display_name.lower(), record.channel_id),
        )
        return self._monitoring_view(records, group)

    async def refresh_channels(self, group_id: Optional[str] = None) -> OperationResult:
        group = self._scope(group_id)
        if group is None:
            return OperationResult(False, "Server ID is required")
        try:
            records = await self._reconciler.reconcile(group)
        except NotReadyError:
            return OperationResult(False, "Bot is not connected. Start the bot first.")
        except Exception as exc:
            LOGGER.exception("Channel refresh failed for %s group %r", self.platform, group)
            return OperationResult(False, describe_connection_error(self.platform, exc))
        return OperationResult(True, f"Found {len(records)} channels", data=self._monitoring_view(records, group))

    def set_monitored(self, channel_id: str, group_id: Optional[str], monitor: bool) -> OperationResult:
        group = self._group(group_id)
        if not channel_id or group is None:
            return OperationResult(False, "Channel ID and server ID are required")
        self._repository.set_channel_monitored(self.platform, channel_id, group, monitor)
        verb = "now" if monitor else "no longer"
        return OperationResult(True, f"Channel {channel_id} is {verb} monitored")

    # -- exclusions -------------------------------------------------------

    def list_excluded_users(self, group_id: Optional[str] = None) -> list[dict[str, Any]]:
        group = self._scope(group_id)
        if group is None:
            return []
        return [excluded_user_to_dict(user) for user in self._repository.list_excluded_users(self.platform, group)]

    def exclude_user(
        self,
        user_id: str,
        group_id: Optional[str] = None,
        display_name: str = "",
        reason: Optional[str] = None,
    ) -> OperationResult:
        # Stored under the same group the pipeline looks up: the message's guild.
        group = self._scope(group_id)
        if not user_id or group is None:
            return OperationResult(False, "User ID and server ID are required")
        stored = self._repository.exclude_user(
            ExcludedUser(
                platform=self.platform,
                user_id=user_id,
                group_id=group,
                display_name=display_name or user_id,
                reason=reason,
            )
        )
        return OperationResult(True, f"User {stored.display_name} excluded", data=excluded_user_to_dict(stored))

    def unexclude_user(self, user_id: str, group_id: Optional[str] = None) -> OperationResult:
        group = self._scope(group_id)
        if group is None:
            return OperationResult(False, "Server ID is required")
        self._repository.remove_excluded_user(self.platform, user_id, group)
        return OperationResult(True, f"User {user_id} is no longer excluded")

    # -- history ----------------------------------------------------------

    async def fetch_history(self, channel_id: str, limit: Optional[int] = None) -> OperationResult:
        """Start a background backfill and return immediately."""

        if not self._lifecycle.is_ready():
            return OperationResult(False, "Bot is not connected. Start the bot first.")
        running = self._history_tasks.get(channel_id)
        if running is not None and not running.done():
            return OperationResult(True, "Historical message processing is already running for this channel")

        self._history_tasks[channel_id] = asyncio.create_task(self._run_backfill(channel_id, limit))
        return OperationResult(
            True,
            "Historical message processing started. Messages will appear as they are analyzed.",
            data={"channel_id": channel_id, "limit": limit},
        )

    async def _run_backfill(self, channel_id: str, limit: Optional[int]) -> None:
        try:
            result = await self._backfill.backfill(channel_id, limit)
        except Exception as exc:
            LOGGER.exception("Backfill task for %s channel %s crashed", self.platform, channel_id)
            result = BackfillResult(success=False, processed_count=0, error_count=0, message=str(exc))
        self._history_results[channel_id] = result
        self._history_tasks.pop(channel_id, None)

    def history_status(self, channel_id: str) -> dict[str, Any]:
        running = channel_id in self._history_tasks
        result = self._history_results.get(channel_id)
        return {
            "channel_id": channel_id,
            "running": running,
            "result": backfill_result_to_dict(result) if result else None,
        }

    # -- ingestion --------------------------------------------------------

    def _remember_chat(self, message: InboundMessage) -> None:
        if self._repository.get_channel_record(self.platform, message.channel_id) is not None:
            return
        self._repository.upsert_channel_record(
            ChannelRecord(
                platform=self.platform,
                channel_id=message.channel_id,
                display_name=message.channel_name or message.channel_id,
                group_id=NO_GROUP,
                group_name=TELEGRAM_GROUP_NAME,
            )
        )
        LOGGER.info("Discovered Telegram chat %s (%s)", message.channel_id, message.channel_name)

    async def handle_inbound(self, message: InboundMessage, realtime: bool = True) -> Optional[IngestOutcome]:
        """Real-time handler; per-message failures are logged and dropped."""

        try:
            if self.platform == TELEGRAM:
                self._remember_chat(message)
            return await self._processor.handle(message, realtime=realtime)
        except Exception:
            LOGGER.exception("Error handling %s message %s", self.platform, message.message_id)
            return None
