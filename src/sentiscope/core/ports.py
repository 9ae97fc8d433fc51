"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, classification, platform
clients, and single-owner locking so that the core can be reused with
different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol

from sentiscope.core.models import (
    AnalyzedMessage,
    BotSettings,
    ChannelInfo,
    ChannelRecord,
    ExcludedUser,
    InboundMessage,
    RecentMessageFilter,
    SentimentResult,
)

MessageListener = Callable[[InboundMessage], Awaitable[None]]


class MonitoringRepository(Protocol):
    """Storage operations required by the core pipeline.

    Every mutator is individually idempotent: inserts are insert-if-absent and
    deletes are delete-if-present.
    """

    def get_monitored_channel_ids(self, platform: str, group_id: str) -> list[str]:
        ...

    def is_channel_monitored(self, platform: str, channel_id: str) -> bool:
        ...

    def set_channel_monitored(self, platform: str, channel_id: str, group_id: str, monitor: bool) -> None:
        ...

    def is_user_excluded(self, platform: str, user_id: str, group_id: str = "") -> bool:
        ...

    def exclude_user(self, user: ExcludedUser) -> ExcludedUser:
        ...

    def remove_excluded_user(self, platform: str, user_id: str, group_id: str = "") -> None:
        ...

    def list_excluded_users(self, platform: str, group_id: str = "") -> list[ExcludedUser]:
        ...

    def upsert_channel_record(self, record: ChannelRecord) -> ChannelRecord:
        ...

    def get_channel_record(self, platform: str, channel_id: str) -> Optional[ChannelRecord]:
        ...

    def list_channel_records(self, platform: str, group_id: Optional[str] = None) -> list[ChannelRecord]:
        ...

    def has_analyzed_message(self, platform: str, channel_id: str, message_id: str) -> bool:
        ...

    def create_analyzed_message(self, message: AnalyzedMessage) -> AnalyzedMessage:
        ...

    def get_active_settings(self, platform: str, group_id: Optional[str] = None) -> Optional[BotSettings]:
        ...

    def get_settings(self, platform: str, group_id: str) -> Optional[BotSettings]:
        ...

    def list_settings(self, platform: str) -> list[BotSettings]:
        ...

    def save_settings(self, settings: BotSettings) -> BotSettings:
        ...

    def list_recent_messages(self, limit: int, filters: RecentMessageFilter) -> list[AnalyzedMessage]:
        ...

    def list_messages_between(
        self, start: datetime, end: datetime, platform: Optional[str] = None
    ) -> list[AnalyzedMessage]:
        ...

    def count_messages(self, platform: Optional[str] = None) -> int:
        ...


class RemoteClassifier(Protocol):
    """Raw remote sentiment call. May raise or return malformed payloads."""

    async def __call__(self, text: str) -> dict:
        ...


class Classifier(Protocol):
    """Classification operations required by the ingestion pipeline."""

    async def classify(self, text: str) -> SentimentResult:
        ...


class PlatformClient(Protocol):
    """Low-level chat platform client driven by the lifecycle manager."""

    platform: str

    async def connect(self, credential: str) -> None:
        """Log in and return once the platform reports ready."""

    async def disconnect(self) -> None:
        ...

    def is_connected(self) -> bool:
        ...

    def add_message_listener(self, listener: MessageListener) -> None:
        ...

    def remove_message_listener(self, listener: MessageListener) -> None:
        ...

    def listener_count(self) -> int:
        ...

    async def fetch_channel_list(self, group_id: str) -> list[ChannelInfo]:
        ...

    async def fetch_message_page(
        self, channel_id: str, before_id: Optional[str], page_size: int
    ) -> list[InboundMessage]:
        """Return one page of history, newest first."""


class OwnerLock(Protocol):
    """Exclusive-owner guard: acquire-or-fail with staleness reclamation."""

    def acquire(self) -> bool:
        ...

    def release(self) -> None:
        ...
