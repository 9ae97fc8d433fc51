from __future__ import annotations

import asyncio

from sentiscope.core.errors import DuplicateKeyError
from sentiscope.core.models import DISCORD, BotSettings, ExcludedUser
from sentiscope.core.processor import (
    AUTHOR_EXCLUDED,
    AUTHOR_IS_BOT,
    BOT_INACTIVE,
    DUPLICATE,
    EMPTY_OR_TRIVIAL,
    NOT_MONITORED,
    MessageProcessor,
)

from fakes import FakeRepository, StubClassifier, make_message


def _setup(active: bool = True, monitor_all: bool = False, monitored: bool = True):
    repository = FakeRepository()
    repository.save_settings(
        BotSettings(platform=DISCORD, group_id="g1", credential="t", is_active=active, monitor_all_channels=monitor_all)
    )
    if monitored:
        repository.set_channel_monitored(DISCORD, "c1", "g1", True)
    classifier = StubClassifier()
    return repository, classifier, MessageProcessor(repository, classifier)


def test_stores_monitored_message() -> None:
    repository, classifier, processor = _setup()

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.is_stored
    stored = repository.messages[(DISCORD, "c1", "m1")]
    assert stored.sentiment_label == "positive"
    assert stored.sentiment_score == 3
    assert stored.user_id == "u1"
    assert classifier.calls == ["I love this community"]


def test_skips_bot_authors_before_anything_else() -> None:
    repository, classifier, processor = _setup()

    outcome = asyncio.run(processor.handle(make_message(author_is_bot=True)))

    assert outcome.reason == AUTHOR_IS_BOT
    assert classifier.calls == []


def test_skips_trivial_text_in_realtime() -> None:
    _, classifier, processor = _setup()

    outcome = asyncio.run(processor.handle(make_message(content="ok")))

    assert outcome.reason == EMPTY_OR_TRIVIAL
    assert classifier.calls == []


def test_backfill_accepts_short_text_but_not_blank() -> None:
    repository, _, processor = _setup()

    short = asyncio.run(processor.handle(make_message("m1", content="ok"), realtime=False))
    blank = asyncio.run(processor.handle(make_message("m2", content="   "), realtime=False))

    assert short.is_stored
    assert blank.reason == EMPTY_OR_TRIVIAL


def test_excluded_author_is_skipped() -> None:
    repository, classifier, processor = _setup()
    repository.exclude_user(ExcludedUser(platform=DISCORD, user_id="u1", group_id="g1"))

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.reason == AUTHOR_EXCLUDED
    assert classifier.calls == []


def test_exclusion_is_checked_before_activity() -> None:
    repository, _, processor = _setup(active=False)
    repository.exclude_user(ExcludedUser(platform=DISCORD, user_id="u1", group_id="g1"))

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.reason == AUTHOR_EXCLUDED


def test_inactive_bot_skips_realtime_messages() -> None:
    repository, _, processor = _setup(active=False)

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.reason == BOT_INACTIVE
    assert repository.messages == {}


def test_missing_settings_skip_realtime_messages() -> None:
    repository = FakeRepository()
    repository.set_channel_monitored(DISCORD, "c1", "g1", True)
    processor = MessageProcessor(repository, StubClassifier())

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.reason == BOT_INACTIVE


def test_backfill_ignores_inactive_bot() -> None:
    repository, _, processor = _setup(active=False)

    outcome = asyncio.run(processor.handle(make_message(), realtime=False))

    assert outcome.is_stored


def test_unmonitored_channel_is_skipped() -> None:
    _, classifier, processor = _setup(monitored=False)

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.reason == NOT_MONITORED
    assert classifier.calls == []


def test_monitor_all_covers_channels_without_opt_in() -> None:
    repository, _, processor = _setup(monitor_all=True, monitored=False)

    outcome = asyncio.run(processor.handle(make_message(channel_id="c9")))

    assert outcome.is_stored
    assert (DISCORD, "c9", "m1") in repository.messages


def test_duplicate_message_is_stored_once() -> None:
    repository, classifier, processor = _setup()

    async def run():
        first = await processor.handle(make_message())
        second = await processor.handle(make_message())
        return first, second

    first, second = asyncio.run(run())

    assert first.is_stored
    assert second.reason == DUPLICATE
    assert len(repository.messages) == 1
    assert len(classifier.calls) == 1


def test_insert_race_is_reported_as_duplicate() -> None:
    class RacingRepository(FakeRepository):
        def create_analyzed_message(self, message):
            raise DuplicateKeyError("stored by another handler")

    repository = RacingRepository()
    repository.save_settings(BotSettings(platform=DISCORD, group_id="g1", credential="t"))
    repository.set_channel_monitored(DISCORD, "c1", "g1", True)
    processor = MessageProcessor(repository, StubClassifier())

    outcome = asyncio.run(processor.handle(make_message()))

    assert outcome.reason == DUPLICATE


def test_end_to_end_accept_and_reject() -> None:
    repository, classifier, processor = _setup(monitor_all=True, monitored=False)
    accepted = make_message("m1", content="I love this!")

    outcome = asyncio.run(processor.handle(accepted))

    assert outcome.is_stored
    assert repository.messages[(DISCORD, "c1", "m1")].channel_id == "c1"

    repository.exclude_user(ExcludedUser(platform=DISCORD, user_id="u1", group_id="g1"))
    rejected = asyncio.run(processor.handle(make_message("m2", content="I love this!")))

    assert rejected.reason == AUTHOR_EXCLUDED
    assert len(repository.messages) == 1
    assert len(classifier.calls) == 1
