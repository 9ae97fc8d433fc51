"""Sentiment classifier adapter (core domain).

Wraps a remote classification call with a fixed contract. Ingestion must not
stall on classifier outages, so every failure becomes the neutral fallback.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from sentiscope.core.models import NEUTRAL, SENTIMENT_LABELS, SentimentResult
from sentiscope.core.ports import RemoteClassifier

LOGGER = logging.getLogger(__name__)

FALLBACK_RESULT = SentimentResult(label=NEUTRAL, score=2, confidence=0.0)

# Callers skip text shorter than this before classifying.
MIN_TEXT_LENGTH = 3


class ClassifierPayloadError(ValueError):
    """The remote classifier answered with something we cannot use."""


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_number(payload: dict[str, Any], key: str) -> float:
    raw = payload.get(key)
    if isinstance(raw, bool) or raw is None:
        raise ClassifierPayloadError(f"missing or invalid '{key}': {raw!r}")
    try:
        number = float(raw)
    except (TypeError, ValueError):
        raise ClassifierPayloadError(f"non-numeric '{key}': {raw!r}") from None
    if math.isnan(number):
        raise ClassifierPayloadError(f"'{key}' is NaN")
    return number


def parse_payload(payload: Any) -> SentimentResult:
    """Normalize a raw classifier payload into a SentimentResult.

    Raises ClassifierPayloadError for missing fields or unknown labels. Numeric
    fields are clamped rather than rejected.
    """

    if not isinstance(payload, dict):
        raise ClassifierPayloadError(f"payload is not an object: {payload!r}")

    label = payload.get("sentiment", payload.get("label"))
    if not isinstance(label, str):
        raise ClassifierPayloadError(f"missing sentiment label: {payload!r}")
    label = label.strip().lower().replace(" ", "_")
    if label not in SENTIMENT_LABELS:
        raise ClassifierPayloadError(f"unknown sentiment label: {label!r}")

    score = int(_clamp(round(_as_number(payload, "score")), 0, 4))
    confidence = _clamp(_as_number(payload, "confidence"), 0.0, 1.0)
    return SentimentResult(label=label, score=score, confidence=confidence)


class SentimentClassifier:
    """Fallback-safe classifier used by the ingestion pipeline."""

    def __init__(self, remote: RemoteClassifier) -> None:
        self._remote = remote

    async def classify(self, text: str) -> SentimentResult:
        preview = text[:30] + ("..." if len(text) > 30 else "")
        try:
            payload = await self._remote(text)
            result = parse_payload(payload)
        except Exception as exc:
            LOGGER.warning("Classifier failed for %r, using neutral fallback: %s", preview, exc)
            return FALLBACK_RESULT

        LOGGER.debug(
            "Classified %r as %s (score=%s, confidence=%.2f)",
            preview,
            result.label,
            result.score,
            result.confidence,
        )
        return result
