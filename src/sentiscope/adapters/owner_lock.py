"""Exclusive-owner locks for platform connections.

Telegram long polling rejects a second poller on the same token with a 409
conflict, so only one process may hold the Telegram connection at a time.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = 120.0


class FileOwnerLock:
    """Lock file holding ``{owner_id, pid, acquired_at}``.

    A lock written by another owner is honoured until it is older than
    ``stale_after`` seconds, after which it is reclaimed.
    """

    def __init__(
        self,
        path: str,
        stale_after: float = DEFAULT_STALE_AFTER,
        owner_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._stale_after = stale_after
        self._owner_id = owner_id or f"{os.getpid()}-{uuid.uuid4().hex[:8]}"
        self._clock = clock

    @property
    def owner_id(self) -> str:
        return self._owner_id

    def _read(self) -> Optional[dict]:
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            # Unreadable or half-written lock: treat as stale.
            return {}

    def _write_exclusive(self) -> bool:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        payload = {"owner_id": self._owner_id, "pid": os.getpid(), "acquired_at": self._clock()}
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        return True

    def acquire(self) -> bool:
        if self._write_exclusive():
            LOGGER.debug("Acquired owner lock %s", self._path)
            return True

        current = self._read()
        if current is None:
            # Removed between our attempt and the read.
            return self._write_exclusive()

        if current.get("owner_id") == self._owner_id:
            os.remove(self._path)
            return self._write_exclusive()

        age = self._clock() - float(current.get("acquired_at") or 0)
        if age < self._stale_after:
            LOGGER.warning(
                "Owner lock %s is held by %s (pid %s) for %.0fs",
                self._path,
                current.get("owner_id"),
                current.get("pid"),
                age,
            )
            return False

        LOGGER.info("Reclaiming stale owner lock %s held by %s", self._path, current.get("owner_id"))
        try:
            os.remove(self._path)
        except FileNotFoundError:
            pass
        return self._write_exclusive()

    def release(self) -> None:
        current = self._read()
        if not current or current.get("owner_id") != self._owner_id:
            return
        try:
            os.remove(self._path)
        except FileNotFoundError:
            pass
        LOGGER.debug("Released owner lock %s", self._path)


class InMemoryOwnerLock:
    """Single-process variant; useful when only one worker ever runs."""

    def __init__(self) -> None:
        self._held = False

    def acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False
