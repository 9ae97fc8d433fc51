from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sentiscope.core.analytics import SentimentAnalytics, score_to_display
from sentiscope.core.models import DISCORD, TELEGRAM, AnalyzedMessage, SENTIMENT_LABELS

from fakes import FakeRepository

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _store(repository: FakeRepository, message_id: str, score: int, days_ago: float, user: str = "u1",
           platform: str = DISCORD) -> None:
    timestamp = NOW - timedelta(days=days_ago)
    repository.create_analyzed_message(
        AnalyzedMessage(
            platform=platform,
            message_id=message_id,
            channel_id="c1",
            user_id=user,
            display_name=user,
            content="text",
            sentiment_label=SENTIMENT_LABELS[score],
            sentiment_score=score,
            confidence=0.9,
            message_timestamp=timestamp,
            analyzed_at=timestamp,
        )
    )


def test_score_to_display_thresholds() -> None:
    assert score_to_display(3.5) == "Very Positive"
    assert score_to_display(3.49) == "Positive"
    assert score_to_display(2.5) == "Positive"
    assert score_to_display(2.0) == "Neutral"
    assert score_to_display(1.5) == "Neutral"
    assert score_to_display(0.5) == "Negative"
    assert score_to_display(0.1) == "Very Negative"


def test_distribution_counts_each_label() -> None:
    repository = FakeRepository()
    _store(repository, "1", 4, 1)
    _store(repository, "2", 4, 2)
    _store(repository, "3", 0, 3)
    _store(repository, "4", 2, 45)

    distribution = SentimentAnalytics(repository, clock=lambda: NOW).distribution(days=30)

    assert distribution["very_positive"] == 2
    assert distribution["very_negative"] == 1
    assert distribution["neutral"] == 0
    assert distribution["total"] == 3


def test_trend_groups_by_day_in_order() -> None:
    repository = FakeRepository()
    _store(repository, "1", 4, 1)
    _store(repository, "2", 2, 1)
    _store(repository, "3", 0, 3)

    trend = SentimentAnalytics(repository, clock=lambda: NOW).trend(days=7)

    assert [row["date"] for row in trend] == ["2024-06-27", "2024-06-29"]
    assert trend[1]["average_sentiment"] == 3.0
    assert trend[1]["message_count"] == 2
    assert trend[1]["sentiment_counts"]["very_positive"] == 1


def test_stats_compare_current_and_previous_windows() -> None:
    repository = FakeRepository()
    _store(repository, "1", 4, 1, user="a")
    _store(repository, "2", 4, 2, user="b")
    _store(repository, "3", 3, 3, user="a")
    _store(repository, "4", 2, 40, user="a")
    _store(repository, "5", 2, 1, user="t", platform=TELEGRAM)

    stats = SentimentAnalytics(repository, clock=lambda: NOW).stats(platform=DISCORD)

    assert stats["total_messages"] == 4
    assert stats["active_users"] == 2
    assert stats["avg_sentiment"] == "Very Positive"
    assert stats["message_growth"] == 200.0
    assert stats["user_growth"] == 100.0


def test_stats_on_empty_store_are_neutral() -> None:
    stats = SentimentAnalytics(FakeRepository(), clock=lambda: NOW).stats()

    assert stats["total_messages"] == 0
    assert stats["avg_sentiment"] == "Neutral"
    assert stats["message_growth"] == 0.0


def test_messages_on_returns_one_utc_day_newest_first() -> None:
    repository = FakeRepository()
    _store(repository, "late", 3, 0.4)
    _store(repository, "early", 1, 0.45)
    _store(repository, "yesterday", 2, 1)
    _store(repository, "other-platform", 2, 0.4, platform=TELEGRAM)
    analytics = SentimentAnalytics(repository, clock=lambda: NOW)

    rows = analytics.messages_on(NOW.date(), DISCORD)

    assert [row["message_id"] for row in rows] == ["late", "early"]
    assert analytics.messages_on(NOW.date() - timedelta(days=3)) == []
