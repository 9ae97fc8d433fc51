"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LifecycleConfig:
    """Connection lifecycle timing shared by both platforms."""

    connect_timeout: float = 10.0
    settle_delay: float = 1.0


@dataclass(frozen=True)
class BackfillConfig:
    """Paging and pacing settings for historical fetches."""

    page_size: int = 100
    page_delay: float = 1.0
    message_delay: float = 1.0
    long_delay: float = 3.0
    short_pause_every: int = 5
    long_pause_every: int = 20
    default_max_messages: int = 1000
