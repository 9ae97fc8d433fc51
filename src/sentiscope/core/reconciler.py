"""Remote/local channel reconciliation (core domain)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sentiscope.core.errors import NotReadyError
from sentiscope.core.lifecycle import ConnectionLifecycle
from sentiscope.core.models import ChannelRecord
from sentiscope.core.ports import MonitoringRepository

LOGGER = logging.getLogger(__name__)


def _display_changed(local: ChannelRecord, remote: ChannelRecord) -> bool:
    return (
        local.display_name != remote.display_name
        or local.group_name != remote.group_name
        or local.kind != remote.kind
        or local.is_accessible != remote.is_accessible
    )


class ChannelReconciler:
    """Sync the locally cached channel list against the live remote list.

    Local records are never deleted: a channel missing from the remote list
    may only be unfetchable for a moment, and deleting it would silently
    un-monitor it.
    """

    def __init__(self, repository: MonitoringRepository, lifecycle: ConnectionLifecycle) -> None:
        self._repository = repository
        self._lifecycle = lifecycle

    async def reconcile(self, group_id: str) -> list[ChannelRecord]:
        if not self._lifecycle.is_ready():
            raise NotReadyError(f"{self._lifecycle.platform} client is not ready")

        platform = self._lifecycle.platform
        remote_channels = await self._lifecycle.client.fetch_channel_list(group_id)
        local = {record.channel_id: record for record in self._repository.list_channel_records(platform, group_id)}

        now = datetime.now(timezone.utc)
        inserted = updated = 0
        for info in remote_channels:
            remote = ChannelRecord(
                platform=platform,
                channel_id=info.channel_id,
                display_name=info.display_name,
                group_id=info.group_id,
                group_name=info.group_name,
                kind=info.kind,
                is_accessible=info.is_accessible,
                last_checked_at=now,
            )
            existing = local.get(info.channel_id)
            if existing is None:
                inserted += 1
            elif _display_changed(existing, remote):
                updated += 1
            else:
                continue
            self._repository.upsert_channel_record(remote)

        seen = {info.channel_id for info in remote_channels}
        kept = len([channel_id for channel_id in local if channel_id not in seen])
        LOGGER.info(
            "Reconciled %s group %r: %s inserted, %s updated, %s kept without remote match",
            platform,
            group_id,
            inserted,
            updated,
            kept,
        )
        return sorted(
            self._repository.list_channel_records(platform, group_id),
            key=lambda record: (record.display_name.lower(), record.channel_id),
        )
