"""Credential format validation (core domain).

Tokens are pasted by an operator, so stray whitespace and invisible characters
are common. Validation happens before any connection attempt.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from sentiscope.core.models import DISCORD, TELEGRAM

_TELEGRAM_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]+$")
_TELEGRAM_DISALLOWED = re.compile(r"[^\d:A-Za-z_-]")
_DISCORD_DISALLOWED = re.compile(r"[^A-Za-z0-9_.-]")

TELEGRAM_MIN_LENGTH = 15
DISCORD_MIN_LENGTH = 50


@dataclass(frozen=True)
class TokenValidation:
    is_valid: bool
    cleaned: Optional[str] = None
    message: Optional[str] = None


def validate_telegram_token(raw: Optional[str]) -> TokenValidation:
    """Validate a Telegram bot token of the form ``<digits>:<secret>``.

    Characters outside the token alphabet are stripped; the token is still
    accepted when the stripped form is well formed, with a warning message.
    """

    if not raw:
        return TokenValidation(False, message="Token is required")

    trimmed = raw.strip()
    if ":" not in trimmed:
        return TokenValidation(
            False,
            message="Invalid token format. Token must contain a colon separating the bot ID and secret.",
        )

    cleaned = _TELEGRAM_DISALLOWED.sub("", trimmed)
    if cleaned != trimmed:
        if _TELEGRAM_PATTERN.match(cleaned) and len(cleaned) >= TELEGRAM_MIN_LENGTH:
            return TokenValidation(
                True,
                cleaned=cleaned,
                message="Token contained invalid characters that were removed.",
            )
        return TokenValidation(
            False,
            message=(
                "Token contains invalid characters and doesn't match the expected format: "
                "numbers, colon, then letters/numbers/symbols."
            ),
        )

    if not _TELEGRAM_PATTERN.match(cleaned):
        return TokenValidation(
            False,
            message="Token doesn't match the expected format: numbers, colon, then letters/numbers/symbols.",
        )

    if len(cleaned) < TELEGRAM_MIN_LENGTH:
        return TokenValidation(False, message="Token appears too short to be valid.")

    return TokenValidation(True, cleaned=cleaned)


def validate_discord_token(raw: Optional[str]) -> TokenValidation:
    """Validate a Discord bot token (dot separated, base64 alphabet)."""

    if not raw:
        return TokenValidation(False, message="Token is required")

    trimmed = raw.strip()
    if _DISCORD_DISALLOWED.search(trimmed):
        return TokenValidation(
            False,
            message=(
                "Token contains invalid characters. Discord tokens should only contain "
                "letters, numbers, underscores, dots, and hyphens."
            ),
        )

    if "." not in trimmed:
        return TokenValidation(
            False,
            message="Invalid token format. Discord tokens typically contain dots as separators.",
        )

    if len(trimmed) < DISCORD_MIN_LENGTH:
        return TokenValidation(False, message="Token appears too short to be valid.")

    return TokenValidation(True, cleaned=trimmed)


_VALIDATORS: dict[str, Callable[[Optional[str]], TokenValidation]] = {
    DISCORD: validate_discord_token,
    TELEGRAM: validate_telegram_token,
}


def validator_for(platform: str) -> Callable[[Optional[str]], TokenValidation]:
    try:
        return _VALIDATORS[platform]
    except KeyError:
        raise ValueError(f"Unsupported platform: {platform}") from None
