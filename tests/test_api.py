from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from sentiscope.api import create_app
from sentiscope.core.analytics import SentimentAnalytics
from sentiscope.core.backfill import HistoryBackfill
from sentiscope.core.config import LifecycleConfig
from sentiscope.core.lifecycle import ConnectionLifecycle
from sentiscope.core.models import DISCORD, TELEGRAM, AnalyzedMessage, BotSettings
from sentiscope.core.processor import MessageProcessor
from sentiscope.core.reconciler import ChannelReconciler
from sentiscope.core.token_validation import validator_for
from sentiscope.service import PlatformService

from fakes import FakePlatformClient, FakeRepository, StubClassifier, no_sleep

AUTH = ("admin", "secret")


def _analyzed(message_id: str, timestamp: datetime) -> AnalyzedMessage:
    return AnalyzedMessage(
        platform=DISCORD,
        message_id=message_id,
        channel_id="c1",
        user_id="u1",
        display_name="Alice",
        content="text",
        sentiment_label="positive",
        sentiment_score=3,
        confidence=0.9,
        message_timestamp=timestamp,
        analyzed_at=timestamp,
    )


def _client():
    repository = FakeRepository()
    processor = MessageProcessor(repository, StubClassifier())
    services = {}
    for platform in (DISCORD, TELEGRAM):
        lifecycle = ConnectionLifecycle(
            FakePlatformClient(platform=platform),
            validator_for(platform),
            config=LifecycleConfig(settle_delay=0),
            sleep=no_sleep,
        )
        services[platform] = PlatformService(
            repository=repository,
            lifecycle=lifecycle,
            processor=processor,
            reconciler=ChannelReconciler(repository, lifecycle),
            backfill=HistoryBackfill(lifecycle, processor, sleep=no_sleep),
        )
    app = create_app(services, SentimentAnalytics(repository), "admin", "secret")
    return TestClient(app), repository


def test_requests_require_basic_auth() -> None:
    client, _ = _client()

    assert client.get("/api/stats").status_code == 401
    assert client.get("/api/stats", auth=("admin", "wrong")).status_code == 401
    assert client.get("/api/stats", auth=AUTH).status_code == 200


def test_missing_dashboard_password_rejects_everyone() -> None:
    repository = FakeRepository()
    app = create_app({}, SentimentAnalytics(repository), "admin", None)

    assert TestClient(app).get("/api/stats", auth=("admin", "")).status_code == 401


def test_unknown_platform_is_404() -> None:
    client, _ = _client()

    assert client.get("/api/slack/status", auth=AUTH).status_code == 404


def test_dashboard_reads() -> None:
    client, _ = _client()

    stats = client.get("/api/stats", auth=AUTH).json()
    distribution = client.get("/api/distribution", params={"days": 7}, auth=AUTH).json()
    trend = client.get("/api/sentiment", auth=AUTH).json()
    recent = client.get("/api/recent-messages", params={"limit": 5}, auth=AUTH).json()

    assert stats["total_messages"] == 0
    assert distribution["total"] == 0
    assert trend == []
    assert recent == []


def test_invalid_token_settings_update_is_refused() -> None:
    client, repository = _client()

    response = client.post("/api/discord/settings", json={"group_id": "g1", "token": "nope"}, auth=AUTH)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert repository.settings == {}


def test_status_reports_lifecycle_state() -> None:
    client, _ = _client()

    body = client.get("/api/telegram/status", auth=AUTH).json()

    assert body["platform"] == TELEGRAM
    assert body["state"] == "uninitialized"
    assert body["ready"] is False


def test_monitor_and_exclusion_routes() -> None:
    client, repository = _client()

    response = client.post(
        "/api/discord/channels/monitor", json={"channel_id": "c1", "group_id": "g1", "monitor": True}, auth=AUTH
    )
    assert response.json() == {"success": True, "message": "Channel c1 is now monitored"}
    assert repository.get_monitored_channel_ids(DISCORD, "g1") == ["c1"]

    response = client.post(
        "/api/discord/excluded-users", json={"user_id": "u1", "group_id": "g1", "display_name": "Alice"}, auth=AUTH
    )
    assert response.json()["data"]["display_name"] == "Alice"

    listed = client.get("/api/discord/excluded-users", params={"group_id": "g1"}, auth=AUTH).json()
    assert [user["user_id"] for user in listed] == ["u1"]

    response = client.delete("/api/discord/excluded-users/u1", params={"group_id": "g1"}, auth=AUTH)
    assert response.json()["success"] is True
    assert repository.list_excluded_users(DISCORD, "g1") == []


def test_discord_exclusion_without_server_is_refused() -> None:
    client, repository = _client()

    response = client.post("/api/discord/excluded-users", json={"user_id": "u1"}, auth=AUTH)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert repository.excluded == {}


def test_messages_on_date() -> None:
    client, repository = _client()
    repository.create_analyzed_message(_analyzed("m1", datetime(2024, 3, 1, 9, tzinfo=timezone.utc)))
    repository.create_analyzed_message(_analyzed("m2", datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)))
    repository.create_analyzed_message(_analyzed("m3", datetime(2024, 3, 2, 0, 5, tzinfo=timezone.utc)))

    response = client.get("/api/messages/2024-03-01", auth=AUTH)

    assert response.status_code == 200
    assert [message["message_id"] for message in response.json()] == ["m2", "m1"]


def test_messages_on_invalid_date() -> None:
    client, _ = _client()

    response = client.get("/api/messages/not-a-date", auth=AUTH)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid date format"}


def test_history_requires_connected_bot() -> None:
    client, _ = _client()

    response = client.post("/api/discord/channels/c1/history", params={"limit": 50}, auth=AUTH)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert client.get("/api/discord/channels/c1/history", auth=AUTH).json()["running"] is False


def test_webhook_validates_fields() -> None:
    client, _ = _client()

    response = client.post("/api/webhook/discord", json={"content": "hello"}, auth=AUTH)

    assert response.status_code == 400
    assert "message_id" in response.json()["message"]


def test_webhook_ingests_through_pipeline() -> None:
    client, repository = _client()
    repository.save_settings(BotSettings(DISCORD, "g1", credential="t"))
    repository.set_channel_monitored(DISCORD, "c1", "g1", True)
    payload = {
        "message_id": "m1",
        "channel_id": "c1",
        "guild_id": "g1",
        "author_id": "u1",
        "author_name": "Alice",
        "content": "This is wonderful news",
        "timestamp": "2024-01-01T10:00:00Z",
    }

    first = client.post("/api/webhook/discord", json=payload, auth=AUTH)
    second = client.post("/api/webhook/discord", json=payload, auth=AUTH)

    assert first.json()["data"] == {"sentiment": "positive", "score": 3}
    assert second.json()["message"] == "Message skipped: duplicate"
    assert len(repository.messages) == 1
