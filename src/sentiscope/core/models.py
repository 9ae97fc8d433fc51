"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any platform-specific types. Identifiers are kept as strings
because Discord snowflakes and Telegram chat ids do not share a numeric range.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

DISCORD = "discord"
TELEGRAM = "telegram"
PLATFORMS = (DISCORD, TELEGRAM)

# Telegram is single-tenant, so every scoped row uses this group id.
NO_GROUP = ""

VERY_NEGATIVE = "very_negative"
NEGATIVE = "negative"
NEUTRAL = "neutral"
POSITIVE = "positive"
VERY_POSITIVE = "very_positive"

# Ordered from 0 to 4 so the index is the canonical score.
SENTIMENT_LABELS = (VERY_NEGATIVE, NEGATIVE, NEUTRAL, POSITIVE, VERY_POSITIVE)
SENTIMENT_SCORES = {label: score for score, label in enumerate(SENTIMENT_LABELS)}
SENTIMENT_DISPLAY = {
    VERY_NEGATIVE: "Very Negative",
    NEGATIVE: "Negative",
    NEUTRAL: "Neutral",
    POSITIVE: "Positive",
    VERY_POSITIVE: "Very Positive",
}

ANALYSIS_FREQUENCIES = ("realtime", "hourly", "daily")


@dataclass(frozen=True)
class SentimentResult:
    """Classifier verdict for one piece of text."""

    label: str
    score: int
    confidence: float


@dataclass(frozen=True)
class InboundMessage:
    """Platform-neutral message event consumed by the ingestion pipeline."""

    platform: str
    message_id: str
    channel_id: str
    group_id: str
    author_id: str
    author_display_name: str
    content: str
    timestamp: datetime
    author_is_bot: bool = False
    channel_name: str = ""


@dataclass(frozen=True)
class AnalyzedMessage:
    """Persisted message with its sentiment verdict. Immutable once stored."""

    platform: str
    message_id: str
    channel_id: str
    user_id: str
    display_name: str
    content: str
    sentiment_label: str
    sentiment_score: int
    confidence: float
    message_timestamp: datetime
    analyzed_at: datetime


@dataclass(frozen=True)
class ChannelInfo:
    """Channel metadata as reported by a remote platform."""

    channel_id: str
    display_name: str
    group_id: str
    group_name: str
    kind: str = "text"
    is_accessible: bool = True


@dataclass(frozen=True)
class ChannelRecord:
    """Locally cached mirror of a remote channel or chat."""

    platform: str
    channel_id: str
    display_name: str
    group_id: str
    group_name: str
    kind: str = "text"
    is_accessible: bool = True
    last_checked_at: Optional[datetime] = None


@dataclass(frozen=True)
class MonitoredChannel:
    """Explicit opt-in to analyze a channel."""

    platform: str
    channel_id: str
    group_id: str


@dataclass(frozen=True)
class ExcludedUser:
    """A user whose messages are never analyzed."""

    platform: str
    user_id: str
    group_id: str = NO_GROUP
    display_name: str = ""
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class BotSettings:
    """Per-scope bot configuration. One row per (platform, group_id)."""

    platform: str
    group_id: str
    credential: Optional[str] = None
    is_active: bool = True
    monitor_all_channels: bool = False
    analysis_frequency: str = "realtime"
    logging_enabled: bool = True
    notifications_enabled: bool = True
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class BackfillResult:
    """Outcome of a historical fetch for one channel."""

    success: bool
    processed_count: int
    error_count: int
    message: str = ""


@dataclass(frozen=True)
class OperationResult:
    """Envelope returned by every operator-facing write operation."""

    success: bool
    message: Optional[str] = None
    data: Any = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.message is not None:
            payload["message"] = self.message
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class RecentMessageFilter:
    """Optional filters for the recent-messages feed."""

    platform: Optional[str] = None
    sentiment: Optional[str] = None
    channel_id: Optional[str] = None
    search: Optional[str] = None
