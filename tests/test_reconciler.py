from __future__ import annotations

import asyncio

import pytest

from sentiscope.core.config import LifecycleConfig
from sentiscope.core.errors import NotReadyError
from sentiscope.core.lifecycle import ConnectionLifecycle
from sentiscope.core.models import DISCORD, ChannelInfo, ChannelRecord
from sentiscope.core.reconciler import ChannelReconciler
from sentiscope.core.token_validation import validate_discord_token

from fakes import DISCORD_TOKEN, FakePlatformClient, FakeRepository, no_sleep


def _lifecycle(client: FakePlatformClient) -> ConnectionLifecycle:
    return ConnectionLifecycle(client, validate_discord_token, config=LifecycleConfig(settle_delay=0), sleep=no_sleep)


def test_reconcile_inserts_updates_and_keeps() -> None:
    repository = FakeRepository()
    repository.upsert_channel_record(ChannelRecord(DISCORD, "c1", "old-name", "g1", "Guild"))
    repository.upsert_channel_record(ChannelRecord(DISCORD, "c3", "archive", "g1", "Guild"))
    repository.upsert_channel_record(ChannelRecord(DISCORD, "c4", "unchanged", "g1", "Guild"))
    repository.upserts.clear()

    client = FakePlatformClient(
        channels=[
            ChannelInfo("c1", "general", "g1", "Guild"),
            ChannelInfo("c2", "random", "g1", "Guild"),
            ChannelInfo("c4", "unchanged", "g1", "Guild"),
        ]
    )
    lifecycle = _lifecycle(client)

    async def run():
        await lifecycle.initialize(DISCORD_TOKEN)
        return await ChannelReconciler(repository, lifecycle).reconcile("g1")

    records = asyncio.run(run())

    assert [record.channel_id for record in records] == ["c3", "c1", "c2", "c4"]
    assert [record.display_name for record in records] == ["archive", "general", "random", "unchanged"]
    # Unchanged rows are not rewritten.
    assert sorted(record.channel_id for record in repository.upserts) == ["c1", "c2"]
    assert repository.get_channel_record(DISCORD, "c3") is not None


def test_reconcile_requires_ready_client() -> None:
    lifecycle = _lifecycle(FakePlatformClient())

    with pytest.raises(NotReadyError):
        asyncio.run(ChannelReconciler(FakeRepository(), lifecycle).reconcile("g1"))


def test_reconcile_stores_reported_accessibility() -> None:
    repository = FakeRepository()
    repository.upsert_channel_record(ChannelRecord(DISCORD, "c1", "general", "g1", "Guild"))
    repository.upserts.clear()

    client = FakePlatformClient(
        channels=[
            ChannelInfo("c1", "general", "g1", "Guild", is_accessible=False),
            ChannelInfo("c2", "staff", "g1", "Guild", is_accessible=False),
            ChannelInfo("c3", "random", "g1", "Guild"),
        ]
    )
    lifecycle = _lifecycle(client)

    async def run():
        await lifecycle.initialize(DISCORD_TOKEN)
        return await ChannelReconciler(repository, lifecycle).reconcile("g1")

    records = {record.channel_id: record for record in asyncio.run(run())}

    assert not records["c1"].is_accessible
    assert not records["c2"].is_accessible
    assert records["c3"].is_accessible
    # A permission change alone is enough to rewrite the row.
    assert "c1" in [record.channel_id for record in repository.upserts]
