from __future__ import annotations

import pytest

from sentiscope.core.token_validation import (
    validate_discord_token,
    validate_telegram_token,
    validator_for,
)

from fakes import DISCORD_TOKEN, TELEGRAM_TOKEN


def test_telegram_token_is_trimmed() -> None:
    result = validate_telegram_token(f"  {TELEGRAM_TOKEN}\n")

    assert result.is_valid
    assert result.cleaned == TELEGRAM_TOKEN
    assert result.message is None


def test_telegram_token_requires_colon() -> None:
    result = validate_telegram_token("123456789AAHdqTcvCH1vGWJxfSeof")

    assert not result.is_valid
    assert "colon" in result.message


def test_telegram_token_strips_invisible_characters_with_warning() -> None:
    result = validate_telegram_token("123456789:ABC\u200bdefGHIjklmno")

    assert result.is_valid
    assert result.cleaned == "123456789:ABCdefGHIjklmno"
    assert "removed" in result.message


def test_telegram_token_with_unrecoverable_characters_is_rejected() -> None:
    result = validate_telegram_token("abc:def ghi")

    assert not result.is_valid


def test_telegram_token_too_short() -> None:
    result = validate_telegram_token("1:abc")

    assert not result.is_valid
    assert "too short" in result.message


def test_discord_token_accepts_well_formed_token() -> None:
    result = validate_discord_token(f" {DISCORD_TOKEN} ")

    assert result.is_valid
    assert result.cleaned == DISCORD_TOKEN


@pytest.mark.parametrize(
    "token, fragment",
    [
        ("abc def.ghi" + "x" * 50, "invalid characters"),
        ("x" * 60, "dots"),
        ("abc.def", "too short"),
        ("", "required"),
        (None, "required"),
    ],
)
def test_discord_token_rejections(token, fragment: str) -> None:
    result = validate_discord_token(token)

    assert not result.is_valid
    assert fragment in result.message


def test_validator_for_unknown_platform() -> None:
    with pytest.raises(ValueError):
        validator_for("slack")
