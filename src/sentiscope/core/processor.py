"""Core message ingestion pipeline.

This module is platform-agnostic. It only relies on ports for storage and
classification, so real-time events and backfill pages share one code path.

The pipeline enforces a strict order, cheapest and most authoritative first:
1) Ignore bot authors
2) Fast-exit for empty or trivial text
3) Author exclusion
4) Bot active (real-time path only)
5) Channel monitored, explicitly or through monitor-all
6) Message-level idempotency
7) Classify and persist
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sentiscope.core.classifier import MIN_TEXT_LENGTH
from sentiscope.core.errors import DuplicateKeyError
from sentiscope.core.models import AnalyzedMessage, InboundMessage
from sentiscope.core.ports import Classifier, MonitoringRepository

LOGGER = logging.getLogger(__name__)

STORED = "stored"
SKIPPED = "skipped"

AUTHOR_IS_BOT = "author_is_bot"
EMPTY_OR_TRIVIAL = "empty_or_trivial"
AUTHOR_EXCLUDED = "author_excluded"
BOT_INACTIVE = "bot_inactive"
NOT_MONITORED = "not_monitored"
DUPLICATE = "duplicate"


@dataclass(frozen=True)
class IngestOutcome:
    """Terminal state of one message: stored, or skipped with a reason."""

    status: str
    reason: Optional[str] = None
    stored: Optional[AnalyzedMessage] = None

    @property
    def is_stored(self) -> bool:
        return self.status == STORED


def _skip(message: InboundMessage, reason: str) -> IngestOutcome:
    LOGGER.debug(
        "Skipping %s message %s in %s: %s",
        message.platform,
        message.message_id,
        message.channel_id,
        reason,
    )
    return IngestOutcome(status=SKIPPED, reason=reason)


class MessageProcessor:
    """Orchestrates guard checks, classification, and persistence."""

    def __init__(self, repository: MonitoringRepository, classifier: Classifier) -> None:
        self._repository = repository
        self._classifier = classifier

    async def handle(self, message: InboundMessage, realtime: bool = True) -> IngestOutcome:
        """Process one inbound message through the pipeline.

        Backfill passes ``realtime=False``: historical data does not depend on
        the bot being active, and only blank text is dropped.
        """

        if message.author_is_bot:
            return _skip(message, AUTHOR_IS_BOT)

        content = message.content or ""
        if realtime:
            if len(content) < MIN_TEXT_LENGTH:
                return _skip(message, EMPTY_OR_TRIVIAL)
        elif not content.strip():
            return _skip(message, EMPTY_OR_TRIVIAL)

        if self._repository.is_user_excluded(message.platform, message.author_id, message.group_id):
            return _skip(message, AUTHOR_EXCLUDED)

        settings = self._repository.get_active_settings(message.platform, message.group_id)
        if realtime and (settings is None or not settings.is_active):
            return _skip(message, BOT_INACTIVE)

        monitor_all = bool(settings and settings.is_active and settings.monitor_all_channels)
        if not monitor_all and not self._repository.is_channel_monitored(message.platform, message.channel_id):
            return _skip(message, NOT_MONITORED)

        if self._repository.has_analyzed_message(message.platform, message.channel_id, message.message_id):
            return _skip(message, DUPLICATE)

        result = await self._classifier.classify(content)

        analyzed = AnalyzedMessage(
            platform=message.platform,
            message_id=message.message_id,
            channel_id=message.channel_id,
            user_id=message.author_id,
            display_name=message.author_display_name,
            content=content,
            sentiment_label=result.label,
            sentiment_score=result.score,
            confidence=result.confidence,
            message_timestamp=message.timestamp,
            analyzed_at=datetime.now(timezone.utc),
        )
        try:
            stored = self._repository.create_analyzed_message(analyzed)
        except DuplicateKeyError:
            # Another handler stored it between the check and the insert.
            return _skip(message, DUPLICATE)

        LOGGER.info(
            "Stored %s message %s from %s in %s as %s",
            message.platform,
            message.message_id,
            message.author_display_name or message.author_id,
            message.channel_id,
            result.label,
        )
        return IngestOutcome(status=STORED, stored=stored)
