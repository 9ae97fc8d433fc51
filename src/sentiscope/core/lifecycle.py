"""Connection lifecycle manager (core domain).

One instance owns the single live connection to a chat platform. The instance
is created by the application and injected where needed, so "at most one
live connection per platform" is a property of this object rather than of
module globals.

States: uninitialized -> initializing -> ready -> (error | uninitialized)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sentiscope.core.config import LifecycleConfig
from sentiscope.core.errors import InvalidCredentialError
from sentiscope.core.models import InboundMessage
from sentiscope.core.ports import MessageListener, OwnerLock, PlatformClient
from sentiscope.core.token_validation import TokenValidation

LOGGER = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
INITIALIZING = "initializing"
READY = "ready"
ERROR = "error"


class OwnerLockHeldError(RuntimeError):
    """Another live process owns the platform connection."""


class ConnectionLifecycle:
    """Idempotent initialize/teardown around a PlatformClient."""

    def __init__(
        self,
        client: PlatformClient,
        validator: Callable[[Optional[str]], TokenValidation],
        owner_lock: Optional[OwnerLock] = None,
        config: LifecycleConfig = LifecycleConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._validator = validator
        self._owner_lock = owner_lock
        self._config = config
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._state = UNINITIALIZED
        self._credential: Optional[str] = None
        self._subscribers: list[MessageListener] = []
        # Keep one bound-method object so remove() sees the same callable add() saw.
        self._listener: MessageListener = self._dispatch
        self._listener_attached = False
        self.last_error: Optional[BaseException] = None

    @property
    def platform(self) -> str:
        return self._client.platform

    @property
    def client(self) -> PlatformClient:
        return self._client

    @property
    def state(self) -> str:
        return self._state

    def is_ready(self) -> bool:
        return self._state == READY and self._client.is_connected()

    def subscribe(self, handler: MessageListener) -> None:
        """Register a handler for inbound messages. Survives reconnects."""

        if handler not in self._subscribers:
            self._subscribers.append(handler)

    def unsubscribe(self, handler: MessageListener) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    async def _dispatch(self, message: InboundMessage) -> None:
        for handler in list(self._subscribers):
            try:
                await handler(message)
            except Exception:
                LOGGER.exception("Handler failed for %s message %s", self.platform, message.message_id)

    def _is_current(self, credential: Optional[str]) -> bool:
        return credential is not None and self._credential == credential and self.is_ready()

    async def initialize(self, credential: Optional[str], force: bool = False) -> bool:
        """Connect with ``credential``; return True once the platform is ready.

        A call made while another attempt is in flight waits for it and then
        re-checks the fast path, so both callers end up sharing one connection.
        """

        validation = self._validator(credential)
        cleaned = validation.cleaned if validation.is_valid else None
        if not force and self._is_current(cleaned):
            return True

        async with self._lock:
            if not force and self._is_current(cleaned):
                return True

            await self._teardown_locked()

            if not validation.is_valid or cleaned is None:
                return self._fail(InvalidCredentialError(validation.message or "Invalid credential"))
            if validation.message:
                LOGGER.warning("%s credential: %s", self.platform, validation.message)

            self._state = INITIALIZING
            self.last_error = None
            LOGGER.info("Connecting %s client", self.platform)

            if self._owner_lock is not None and not self._owner_lock.acquire():
                return self._fail(
                    OwnerLockHeldError(f"Another running instance owns the {self.platform} connection")
                )

            try:
                await asyncio.wait_for(self._client.connect(cleaned), timeout=self._config.connect_timeout)
            except asyncio.TimeoutError:
                await self._abort_connect()
                return self._fail(
                    TimeoutError(
                        f"{self.platform} did not report ready within {self._config.connect_timeout:g}s"
                    )
                )
            except Exception as exc:
                await self._abort_connect()
                return self._fail(exc)

            self._client.add_message_listener(self._listener)
            self._listener_attached = True
            self._credential = cleaned
            self._state = READY
            LOGGER.info("%s client ready", self.platform)
            return True

    async def teardown(self) -> None:
        """Detach listeners, disconnect, and release the owner lock."""

        async with self._lock:
            await self._teardown_locked()

    async def _teardown_locked(self) -> None:
        if self._listener_attached:
            self._client.remove_message_listener(self._listener)
            self._listener_attached = False

        had_connection = self._state in (READY, INITIALIZING) or self._client.is_connected()
        if had_connection:
            LOGGER.info("Tearing down %s client", self.platform)
            try:
                await self._client.disconnect()
            except Exception:
                LOGGER.exception("Error while disconnecting %s client", self.platform)
            # Give in-flight network calls a moment to settle.
            await self._sleep(self._config.settle_delay)

        if self._owner_lock is not None:
            self._owner_lock.release()

        self._credential = None
        self._state = UNINITIALIZED

    async def _abort_connect(self) -> None:
        try:
            await self._client.disconnect()
        except Exception:
            LOGGER.exception("Error while aborting %s connection", self.platform)
        if self._owner_lock is not None:
            self._owner_lock.release()

    def _fail(self, exc: BaseException) -> bool:
        LOGGER.error("Failed to initialize %s client: %s", self.platform, exc)
        self.last_error = exc
        self._credential = None
        self._state = ERROR
        return False

    def status(self) -> dict[str, object]:
        return {
            "platform": self.platform,
            "state": self._state,
            "ready": self.is_ready(),
            "listeners": self._client.listener_count(),
            "last_error": str(self.last_error) if self.last_error else None,
        }
