"""Read-side aggregation for the dashboard (core domain).

These are simple range scans over stored messages; nothing here is cached.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from sentiscope.core.models import (
    SENTIMENT_DISPLAY,
    SENTIMENT_LABELS,
    AnalyzedMessage,
    RecentMessageFilter,
)
from sentiscope.core.ports import MonitoringRepository

NEUTRAL_SCORE = 2.0


def _empty_counts() -> dict[str, int]:
    return {label: 0 for label in SENTIMENT_LABELS}


def score_to_display(score: float) -> str:
    """Map an average 0..4 score onto a display label."""

    if score >= 3.5:
        return SENTIMENT_DISPLAY["very_positive"]
    if score >= 2.5:
        return SENTIMENT_DISPLAY["positive"]
    if score >= 1.5:
        return SENTIMENT_DISPLAY["neutral"]
    if score >= 0.5:
        return SENTIMENT_DISPLAY["negative"]
    return SENTIMENT_DISPLAY["very_negative"]


def _average(messages: Iterable[AnalyzedMessage]) -> Optional[float]:
    scores = [message.sentiment_score for message in messages]
    if not scores:
        return None
    return sum(scores) / len(scores)


def _growth(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def message_to_dict(message: AnalyzedMessage) -> dict[str, Any]:
    return {
        "platform": message.platform,
        "message_id": message.message_id,
        "channel_id": message.channel_id,
        "user_id": message.user_id,
        "display_name": message.display_name,
        "content": message.content,
        "sentiment": message.sentiment_label,
        "sentiment_score": message.sentiment_score,
        "confidence": message.confidence,
        "created_at": message.message_timestamp.isoformat(),
        "analyzed_at": message.analyzed_at.isoformat(),
    }


class SentimentAnalytics:
    """Stats, distribution, trend, and recent-message queries."""

    def __init__(
        self,
        repository: MonitoringRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._clock = clock

    def distribution(self, days: int = 30, platform: Optional[str] = None) -> dict[str, int]:
        end = self._clock()
        messages = self._repository.list_messages_between(end - timedelta(days=days), end, platform)
        counts = _empty_counts()
        for message in messages:
            counts[message.sentiment_label] = counts.get(message.sentiment_label, 0) + 1
        return {**counts, "total": len(messages)}

    def trend(self, days: int = 30, platform: Optional[str] = None) -> list[dict[str, Any]]:
        """Per-day average score, volume, and label counts, oldest first."""

        end = self._clock()
        messages = self._repository.list_messages_between(end - timedelta(days=days), end, platform)

        by_day: dict[str, list[AnalyzedMessage]] = {}
        for message in messages:
            by_day.setdefault(message.message_timestamp.date().isoformat(), []).append(message)

        rows = []
        for day in sorted(by_day):
            day_messages = by_day[day]
            counts = _empty_counts()
            for message in day_messages:
                counts[message.sentiment_label] = counts.get(message.sentiment_label, 0) + 1
            rows.append(
                {
                    "date": day,
                    "average_sentiment": _average(day_messages),
                    "message_count": len(day_messages),
                    "sentiment_counts": counts,
                }
            )
        return rows

    def stats(self, platform: Optional[str] = None) -> dict[str, Any]:
        """Headline numbers for the last 30 days against the 30 before."""

        end = self._clock()
        start = end - timedelta(days=30)
        previous_start = start - timedelta(days=30)

        current = self._repository.list_messages_between(start, end, platform)
        previous = self._repository.list_messages_between(previous_start, start, platform)

        current_avg = _average(current)
        previous_avg = _average(previous)
        current_users = {message.user_id for message in current}
        previous_users = {message.user_id for message in previous}

        return {
            "total_messages": self._repository.count_messages(platform),
            "avg_sentiment": score_to_display(current_avg if current_avg is not None else NEUTRAL_SCORE),
            "active_users": len(current_users),
            "message_growth": _growth(len(current), len(previous)),
            "sentiment_growth": _growth(
                current_avg if current_avg is not None else NEUTRAL_SCORE,
                previous_avg if previous_avg is not None else NEUTRAL_SCORE,
            ),
            "user_growth": _growth(len(current_users), len(previous_users)),
        }

    def messages_on(self, day: date, platform: Optional[str] = None) -> list[dict[str, Any]]:
        """Messages posted on one UTC calendar day, newest first."""

        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = datetime.combine(day, time.max, tzinfo=timezone.utc)
        messages = self._repository.list_messages_between(start, end, platform)
        messages.sort(key=lambda message: message.message_timestamp, reverse=True)
        return [message_to_dict(message) for message in messages]

    def recent_messages(self, limit: int = 10, filters: Optional[RecentMessageFilter] = None) -> list[dict[str, Any]]:
        messages = self._repository.list_recent_messages(limit, filters or RecentMessageFilter())
        return [message_to_dict(message) for message in messages]
