"""OpenAI sentiment adapter.

Implements the RemoteClassifier port with a JSON-mode chat completion. The
core SentimentClassifier owns validation and the neutral fallback, so this
adapter only raises on transport or decoding problems.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"

SYSTEM_PROMPT = (
    "You are a sentiment analysis expert. Analyze the sentiment of the text and classify it exactly "
    "into one of these categories: 'very_positive', 'positive', 'neutral', 'negative', 'very_negative'. "
    "Also provide a numerical score from 0 to 4 (0 = very negative, 1 = negative, 2 = neutral, "
    "3 = positive, 4 = very positive) and a confidence level between 0 and 1. "
    "Respond with JSON in this format: { 'sentiment': string, 'score': number, 'confidence': number }"
)


class OpenAIRemoteClassifier:
    """Remote classifier backed by the OpenAI chat completions API."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, client: Optional[AsyncOpenAI] = None) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._model = model

    async def __call__(self, text: str) -> dict[str, Any]:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            response_format={"type": "json_object"},
        )
        if not response.choices or not response.choices[0].message.content:
            raise ValueError("Invalid response structure from OpenAI")
        return json.loads(response.choices[0].message.content)


class UnconfiguredRemoteClassifier:
    """Stand-in used when OPENAI_API_KEY is missing; every call falls back."""

    async def __call__(self, text: str) -> dict[str, Any]:
        raise RuntimeError("OPENAI_API_KEY is not set")


def build_remote_classifier(api_key: Optional[str], model: Optional[str] = None):
    if not api_key:
        LOGGER.warning("OPENAI_API_KEY is not set; every message will be stored as neutral")
        return UnconfiguredRemoteClassifier()
    return OpenAIRemoteClassifier(api_key=api_key, model=model or DEFAULT_MODEL)
