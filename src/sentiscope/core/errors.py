"""Exception types shared by the core and adapters."""

from __future__ import annotations


class SentiscopeError(Exception):
    """Base class for errors raised by sentiscope."""


class DuplicateKeyError(SentiscopeError):
    """Raised by the repository when a unique key is already stored."""


class NotReadyError(SentiscopeError):
    """Raised when an operation needs a live platform connection."""


class HistoryUnavailableError(SentiscopeError):
    """Raised by platform clients that cannot read chat history."""


class InvalidCredentialError(SentiscopeError):
    """Raised when a credential is malformed or belongs to another account."""
