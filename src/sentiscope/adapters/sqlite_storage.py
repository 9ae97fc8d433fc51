"""SQLite storage adapter.

Implements the core MonitoringRepository port using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from sentiscope.core.errors import DuplicateKeyError
from sentiscope.core.models import (
    NO_GROUP,
    TELEGRAM,
    AnalyzedMessage,
    BotSettings,
    ChannelRecord,
    ExcludedUser,
    RecentMessageFilter,
)


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width UTC strings keep range scans correct under string comparison.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the MonitoringRepository contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - bot_settings: one configuration row per (platform, group_id)
        - monitored_channels: explicit monitoring opt-ins
        - excluded_users: users never analyzed
        - channels: cached mirror of remote channel/chat metadata
        - analyzed_messages: append-only sentiment results
        """

        with self._connect() as conn:
            # Telegram is single-tenant and always uses group_id ''.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS bot_settings (
                    platform TEXT NOT NULL,
                    group_id TEXT NOT NULL,
                    credential TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    monitor_all_channels INTEGER NOT NULL DEFAULT 0,
                    analysis_frequency TEXT NOT NULL DEFAULT 'realtime',
                    logging_enabled INTEGER NOT NULL DEFAULT 1,
                    notifications_enabled INTEGER NOT NULL DEFAULT 1,
                    updated_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (platform, group_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS monitored_channels (
                    platform TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    group_id TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (platform, channel_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS excluded_users (
                    platform TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    group_id TEXT NOT NULL,
                    display_name TEXT NOT NULL DEFAULT '',
                    reason TEXT,
                    created_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (platform, user_id, group_id)
                )
                """
            )
            # channels is refreshed by the reconciler; it is not authoritative
            # for monitoring state.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS channels (
                    platform TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    display_name TEXT NOT NULL,
                    group_id TEXT NOT NULL,
                    group_name TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'text',
                    is_accessible INTEGER NOT NULL DEFAULT 1,
                    last_checked_at TIMESTAMP,
                    PRIMARY KEY (platform, channel_id)
                )
                """
            )
            # Telegram message ids are only unique within a chat, so the
            # dedupe key includes the channel.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS analyzed_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    platform TEXT NOT NULL,
                    message_id TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    display_name TEXT NOT NULL,
                    content TEXT NOT NULL,
                    sentiment TEXT NOT NULL,
                    sentiment_score INTEGER NOT NULL,
                    confidence REAL NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    analyzed_at TIMESTAMP NOT NULL,
                    UNIQUE (platform, channel_id, message_id)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_analyzed_messages_created ON analyzed_messages (created_at)"
            )

    # -- monitoring -------------------------------------------------------

    def get_monitored_channel_ids(self, platform: str, group_id: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT channel_id FROM monitored_channels WHERE platform = ? AND group_id = ? ORDER BY channel_id",
                (platform, group_id),
            ).fetchall()
        return [row["channel_id"] for row in rows]

    def is_channel_monitored(self, platform: str, channel_id: str) -> bool:
        """Explicit opt-in OR the owning group's active monitor-all flag."""

        with self._connect() as conn:
            explicit = conn.execute(
                "SELECT 1 FROM monitored_channels WHERE platform = ? AND channel_id = ?",
                (platform, channel_id),
            ).fetchone()
            if explicit is not None:
                return True

            channel = conn.execute(
                "SELECT group_id FROM channels WHERE platform = ? AND channel_id = ?",
                (platform, channel_id),
            ).fetchone()
            if channel is not None:
                group_id = channel["group_id"]
            elif platform == TELEGRAM:
                group_id = NO_GROUP
            else:
                return False

            settings = conn.execute(
                """
                SELECT 1 FROM bot_settings
                WHERE platform = ? AND group_id = ? AND is_active = 1 AND monitor_all_channels = 1
                """,
                (platform, group_id),
            ).fetchone()
        return settings is not None

    def set_channel_monitored(self, platform: str, channel_id: str, group_id: str, monitor: bool) -> None:
        with self._connect() as conn:
            if monitor:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO monitored_channels (platform, channel_id, group_id, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (platform, channel_id, group_id, _to_db_time(_now())),
                )
            else:
                conn.execute(
                    "DELETE FROM monitored_channels WHERE platform = ? AND channel_id = ?",
                    (platform, channel_id),
                )

    # -- exclusions -------------------------------------------------------

    @staticmethod
    def _excluded_from_row(row: sqlite3.Row) -> ExcludedUser:
        return ExcludedUser(
            platform=row["platform"],
            user_id=row["user_id"],
            group_id=row["group_id"],
            display_name=row["display_name"],
            reason=row["reason"],
            created_at=_from_db_time(row["created_at"]),
        )

    def is_user_excluded(self, platform: str, user_id: str, group_id: str = NO_GROUP) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM excluded_users WHERE platform = ? AND user_id = ? AND group_id = ?",
                (platform, user_id, group_id),
            ).fetchone()
        return row is not None

    def exclude_user(self, user: ExcludedUser) -> ExcludedUser:
        """Insert the exclusion, or return the existing row on duplicates."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO excluded_users (platform, user_id, group_id, display_name, reason, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user.platform, user.user_id, user.group_id, user.display_name, user.reason, _to_db_time(_now())),
            )
            row = conn.execute(
                "SELECT * FROM excluded_users WHERE platform = ? AND user_id = ? AND group_id = ?",
                (user.platform, user.user_id, user.group_id),
            ).fetchone()
        return self._excluded_from_row(row)

    def remove_excluded_user(self, platform: str, user_id: str, group_id: str = NO_GROUP) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM excluded_users WHERE platform = ? AND user_id = ? AND group_id = ?",
                (platform, user_id, group_id),
            )

    def list_excluded_users(self, platform: str, group_id: str = NO_GROUP) -> list[ExcludedUser]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM excluded_users WHERE platform = ? AND group_id = ? ORDER BY display_name, user_id",
                (platform, group_id),
            ).fetchall()
        return [self._excluded_from_row(row) for row in rows]

    # -- channel records --------------------------------------------------

    @staticmethod
    def _channel_from_row(row: sqlite3.Row) -> ChannelRecord:
        return ChannelRecord(
            platform=row["platform"],
            channel_id=row["channel_id"],
            display_name=row["display_name"],
            group_id=row["group_id"],
            group_name=row["group_name"],
            kind=row["kind"],
            is_accessible=bool(row["is_accessible"]),
            last_checked_at=_from_db_time(row["last_checked_at"]),
        )

    def upsert_channel_record(self, record: ChannelRecord) -> ChannelRecord:
        """Insert a channel or refresh its display fields; identity never changes."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO channels (
                    platform, channel_id, display_name, group_id, group_name, kind, is_accessible, last_checked_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(platform, channel_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    group_name = excluded.group_name,
                    kind = excluded.kind,
                    is_accessible = excluded.is_accessible,
                    last_checked_at = excluded.last_checked_at
                """,
                (
                    record.platform,
                    record.channel_id,
                    record.display_name,
                    record.group_id,
                    record.group_name,
                    record.kind,
                    int(record.is_accessible),
                    _to_db_time(record.last_checked_at),
                ),
            )
            row = conn.execute(
                "SELECT * FROM channels WHERE platform = ? AND channel_id = ?",
                (record.platform, record.channel_id),
            ).fetchone()
        return self._channel_from_row(row)

    def get_channel_record(self, platform: str, channel_id: str) -> Optional[ChannelRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM channels WHERE platform = ? AND channel_id = ?",
                (platform, channel_id),
            ).fetchone()
        return self._channel_from_row(row) if row else None

    def list_channel_records(self, platform: str, group_id: Optional[str] = None) -> list[ChannelRecord]:
        query = "SELECT * FROM channels WHERE platform = ?"
        params: list[object] = [platform]
        if group_id is not None:
            query += " AND group_id = ?"
            params.append(group_id)
        query += " ORDER BY display_name, channel_id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._channel_from_row(row) for row in rows]

    # -- analyzed messages ------------------------------------------------

    @staticmethod
    def _message_from_row(row: sqlite3.Row) -> AnalyzedMessage:
        return AnalyzedMessage(
            platform=row["platform"],
            message_id=row["message_id"],
            channel_id=row["channel_id"],
            user_id=row["user_id"],
            display_name=row["display_name"],
            content=row["content"],
            sentiment_label=row["sentiment"],
            sentiment_score=int(row["sentiment_score"]),
            confidence=float(row["confidence"]),
            message_timestamp=_from_db_time(row["created_at"]),
            analyzed_at=_from_db_time(row["analyzed_at"]),
        )

    def has_analyzed_message(self, platform: str, channel_id: str, message_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM analyzed_messages WHERE platform = ? AND channel_id = ? AND message_id = ?",
                (platform, channel_id, message_id),
            ).fetchone()
        return row is not None

    def create_analyzed_message(self, message: AnalyzedMessage) -> AnalyzedMessage:
        """Persist a message; raises DuplicateKeyError if it is already stored."""

        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO analyzed_messages (
                        platform, message_id, channel_id, user_id, display_name, content,
                        sentiment, sentiment_score, confidence, created_at, analyzed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        message.platform,
                        message.message_id,
                        message.channel_id,
                        message.user_id,
                        message.display_name,
                        message.content,
                        message.sentiment_label,
                        message.sentiment_score,
                        message.confidence,
                        _to_db_time(message.message_timestamp),
                        _to_db_time(message.analyzed_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(
                f"{message.platform} message {message.message_id} in {message.channel_id} already stored"
            ) from exc
        return message

    def list_recent_messages(self, limit: int, filters: RecentMessageFilter) -> list[AnalyzedMessage]:
        query = "SELECT * FROM analyzed_messages WHERE 1=1"
        params: list[object] = []
        if filters.platform:
            query += " AND platform = ?"
            params.append(filters.platform)
        if filters.sentiment and filters.sentiment != "all":
            query += " AND sentiment = ?"
            params.append(filters.sentiment)
        if filters.channel_id and filters.channel_id != "all":
            query += " AND channel_id = ?"
            params.append(filters.channel_id)
        if filters.search and filters.search.strip():
            term = f"%{filters.search.strip().lower()}%"
            query += " AND (LOWER(content) LIKE ? OR LOWER(display_name) LIKE ?)"
            params.extend([term, term])
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._message_from_row(row) for row in rows]

    def list_messages_between(
        self, start: datetime, end: datetime, platform: Optional[str] = None
    ) -> list[AnalyzedMessage]:
        query = "SELECT * FROM analyzed_messages WHERE created_at >= ? AND created_at <= ?"
        params: list[object] = [_to_db_time(start), _to_db_time(end)]
        if platform:
            query += " AND platform = ?"
            params.append(platform)
        query += " ORDER BY created_at DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._message_from_row(row) for row in rows]

    def count_messages(self, platform: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) AS total FROM analyzed_messages"
        params: list[object] = []
        if platform:
            query += " WHERE platform = ?"
            params.append(platform)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return int(row["total"])

    # -- settings ---------------------------------------------------------

    @staticmethod
    def _settings_from_row(row: sqlite3.Row) -> BotSettings:
        return BotSettings(
            platform=row["platform"],
            group_id=row["group_id"],
            credential=row["credential"],
            is_active=bool(row["is_active"]),
            monitor_all_channels=bool(row["monitor_all_channels"]),
            analysis_frequency=row["analysis_frequency"],
            logging_enabled=bool(row["logging_enabled"]),
            notifications_enabled=bool(row["notifications_enabled"]),
            updated_at=_from_db_time(row["updated_at"]),
        )

    def get_settings(self, platform: str, group_id: str) -> Optional[BotSettings]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bot_settings WHERE platform = ? AND group_id = ?",
                (platform, group_id),
            ).fetchone()
        return self._settings_from_row(row) if row else None

    def get_active_settings(self, platform: str, group_id: Optional[str] = None) -> Optional[BotSettings]:
        """Return the scope's settings row, or the most recently updated one."""

        if group_id is not None:
            return self.get_settings(platform, group_id)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bot_settings WHERE platform = ? ORDER BY updated_at DESC LIMIT 1",
                (platform,),
            ).fetchone()
        return self._settings_from_row(row) if row else None

    def list_settings(self, platform: str) -> list[BotSettings]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM bot_settings WHERE platform = ? ORDER BY updated_at DESC",
                (platform,),
            ).fetchall()
        return [self._settings_from_row(row) for row in rows]

    def save_settings(self, settings: BotSettings) -> BotSettings:
        """Upsert the settings row for (platform, group_id) and bump updated_at."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO bot_settings (
                    platform, group_id, credential, is_active, monitor_all_channels,
                    analysis_frequency, logging_enabled, notifications_enabled, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(platform, group_id) DO UPDATE SET
                    credential = excluded.credential,
                    is_active = excluded.is_active,
                    monitor_all_channels = excluded.monitor_all_channels,
                    analysis_frequency = excluded.analysis_frequency,
                    logging_enabled = excluded.logging_enabled,
                    notifications_enabled = excluded.notifications_enabled,
                    updated_at = excluded.updated_at
                """,
                (
                    settings.platform,
                    settings.group_id,
                    settings.credential,
                    int(settings.is_active),
                    int(settings.monitor_all_channels),
                    settings.analysis_frequency,
                    int(settings.logging_enabled),
                    int(settings.notifications_enabled),
                    _to_db_time(_now()),
                ),
            )
            row = conn.execute(
                "SELECT * FROM bot_settings WHERE platform = ? AND group_id = ?",
                (settings.platform, settings.group_id),
            ).fetchone()
        return self._settings_from_row(row)
