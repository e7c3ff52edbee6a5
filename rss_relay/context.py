"""Per-cycle execution context: deadline plus diagnostic tags."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, MutableMapping, Tuple

from .models import FeedConfig

CYCLE_TIMEOUT_SECONDS = 5 * 60


class DeadlineExceeded(TimeoutError):
    """Raised when an operation starts after its cycle deadline."""


class Deadline:
    """Absolute point in (monotonic) time by which a unit of work must finish."""

    def __init__(
        self, seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout(self) -> float:
        """Return the time left, raising if nothing is left."""
        remaining = self.remaining()
        if remaining <= 0:
            raise DeadlineExceeded("cycle deadline exceeded")
        return remaining


class FeedLoggerAdapter(logging.LoggerAdapter):
    """Prefix messages with the feed name and attach the feed's tags as extras."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return f"[{self.extra['feed_name']}] {msg}", kwargs


def feed_tags(feed: FeedConfig) -> Dict[str, Any]:
    return {
        "feed_name": feed.name,
        "url": feed.url,
        "interval": str(feed.interval),
        "without_content": feed.without_content,
    }


@dataclass
class CycleContext:
    """Everything a single fetch/filter/deliver cycle carries along."""

    feed: FeedConfig
    deadline: Deadline
    log: FeedLoggerAdapter

    @classmethod
    def start(
        cls,
        feed: FeedConfig,
        logger: logging.Logger,
        timeout: float = CYCLE_TIMEOUT_SECONDS,
    ) -> "CycleContext":
        return cls(
            feed=feed,
            deadline=Deadline(timeout),
            log=FeedLoggerAdapter(logger, feed_tags(feed)),
        )
