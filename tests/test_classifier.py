from __future__ import annotations

import asyncio

import pytest

from sentiscope.core.classifier import (
    FALLBACK_RESULT,
    ClassifierPayloadError,
    SentimentClassifier,
    parse_payload,
)
from sentiscope.core.models import SentimentResult


def test_parse_payload_clamps_numeric_fields() -> None:
    result = parse_payload({"sentiment": "Very Positive", "score": 7.4, "confidence": 1.5})

    assert result == SentimentResult("very_positive", 4, 1.0)


def test_parse_payload_rounds_score() -> None:
    result = parse_payload({"sentiment": "negative", "score": 0.6, "confidence": -0.2})

    assert result == SentimentResult("negative", 1, 0.0)


@pytest.mark.parametrize(
    "payload",
    [
        {"sentiment": "ecstatic", "score": 4, "confidence": 0.9},
        {"sentiment": "positive", "confidence": 0.9},
        {"sentiment": "positive", "score": True, "confidence": 0.9},
        {"sentiment": "positive", "score": "high", "confidence": 0.9},
        {"score": 3, "confidence": 0.9},
        ["positive"],
    ],
)
def test_parse_payload_rejects_malformed(payload) -> None:
    with pytest.raises(ClassifierPayloadError):
        parse_payload(payload)


def test_classifier_falls_back_when_remote_raises() -> None:
    async def remote(text: str) -> dict:
        raise TimeoutError("upstream timed out")

    result = asyncio.run(SentimentClassifier(remote).classify("hello there"))

    assert result == FALLBACK_RESULT
    assert result == SentimentResult("neutral", 2, 0.0)


def test_classifier_falls_back_on_unknown_label() -> None:
    async def remote(text: str) -> dict:
        return {"sentiment": "mixed", "score": 2, "confidence": 0.5}

    result = asyncio.run(SentimentClassifier(remote).classify("hello there"))

    assert result == FALLBACK_RESULT


def test_classifier_returns_remote_verdict() -> None:
    seen: list[str] = []

    async def remote(text: str) -> dict:
        seen.append(text)
        return {"sentiment": "positive", "score": 3, "confidence": 0.8}

    result = asyncio.run(SentimentClassifier(remote).classify("great release"))

    assert result == SentimentResult("positive", 3, 0.8)
    assert seen == ["great release"]
