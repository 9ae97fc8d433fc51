"""Historical backfill (core domain).

Fetches a channel's past messages page by page and feeds them through the same
ingestion pipeline as real-time events. The pipeline is idempotent, so a rerun
after a partial failure only stores what is missing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sentiscope.core.config import BackfillConfig
from sentiscope.core.errors import HistoryUnavailableError
from sentiscope.core.lifecycle import ConnectionLifecycle
from sentiscope.core.models import BackfillResult, InboundMessage
from sentiscope.core.processor import MessageProcessor

LOGGER = logging.getLogger(__name__)


class HistoryBackfill:
    """Paginated bulk fetch with rate-limit pacing."""

    def __init__(
        self,
        lifecycle: ConnectionLifecycle,
        processor: MessageProcessor,
        config: BackfillConfig = BackfillConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._lifecycle = lifecycle
        self._processor = processor
        self._config = config
        self._sleep = sleep

    async def _fetch_pages(self, channel_id: str, max_messages: int) -> tuple[list[InboundMessage], Optional[str]]:
        """Collect up to ``max_messages``, newest first.

        Returns the messages and, when fetching stopped on an error after at
        least one page, the error text. A first-page error is raised.
        """

        client = self._lifecycle.client
        collected: list[InboundMessage] = []
        before_id: Optional[str] = None

        while len(collected) < max_messages:
            limit = min(self._config.page_size, max_messages - len(collected))
            try:
                page = await client.fetch_message_page(channel_id, before_id, limit)
            except HistoryUnavailableError:
                raise
            except Exception as exc:
                if not collected:
                    raise
                LOGGER.warning(
                    "Page fetch failed for channel %s after %s messages, keeping what we have: %s",
                    channel_id,
                    len(collected),
                    exc,
                )
                return collected, str(exc)

            if not page:
                LOGGER.debug("Reached the start of channel %s history", channel_id)
                break

            collected.extend(page)
            # Cursor is the oldest message of this page.
            before_id = page[-1].message_id
            LOGGER.debug("Fetched %s messages from %s, %s so far", len(page), channel_id, len(collected))
            await self._sleep(self._config.page_delay)

        return collected, None

    async def backfill(self, channel_id: str, max_messages: Optional[int] = None) -> BackfillResult:
        limit = max_messages if max_messages is not None else self._config.default_max_messages
        platform = self._lifecycle.platform

        if not self._lifecycle.is_ready():
            return BackfillResult(
                success=False,
                processed_count=0,
                error_count=0,
                message=f"{platform} client not ready. Please ensure the bot is connected.",
            )

        LOGGER.info("Starting %s backfill for channel %s, up to %s messages", platform, channel_id, limit)
        try:
            messages, page_error = await self._fetch_pages(channel_id, limit)
        except HistoryUnavailableError as exc:
            LOGGER.info("History unavailable for %s channel %s: %s", platform, channel_id, exc)
            return BackfillResult(success=True, processed_count=0, error_count=0, message=str(exc))
        except Exception as exc:
            LOGGER.exception("Failed to fetch any history for %s channel %s", platform, channel_id)
            return BackfillResult(
                success=False,
                processed_count=0,
                error_count=0,
                message=f"Error fetching messages: {exc}",
            )

        if not messages:
            return BackfillResult(success=True, processed_count=0, error_count=0, message="No messages found")

        processed = errors = 0
        # Pages arrive newest first; ingest in chronological order.
        for position, message in enumerate(reversed(messages), start=1):
            try:
                await self._processor.handle(message, realtime=False)
            except Exception:
                errors += 1
                LOGGER.exception("Error processing historical message %s", message.message_id)
                continue
            processed += 1

            if position % self._config.long_pause_every == 0:
                LOGGER.debug("Pausing after %s historical messages to respect rate limits", position)
                await self._sleep(self._config.long_delay)
            elif position % self._config.short_pause_every == 0:
                await self._sleep(self._config.message_delay)

        summary = f"Processed {processed} historical messages from channel {channel_id}"
        if page_error:
            summary += f" (stopped early: {page_error})"
        LOGGER.info("%s backfill finished for %s: processed=%s errors=%s", platform, channel_id, processed, errors)
        return BackfillResult(success=True, processed_count=processed, error_count=errors, message=summary)
