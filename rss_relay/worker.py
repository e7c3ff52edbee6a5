"""The polling loop for a single feed."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from .context import CYCLE_TIMEOUT_SECONDS, CycleContext, feed_tags
from .delivery import DeliveryOutcome, deliver
from .errors import FetchError, ParseError
from .feeds import fetch_feed, select_new_items
from .models import FeedConfig, FeedItem

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CycleResult:
    """Summary of what one cycle did."""

    fetched: bool = False
    new_items: int = 0
    delivered: int = 0
    failed: int = 0


class FeedWorker:
    """Fetch, filter and deliver one feed every ``feed.interval``."""

    def __init__(
        self,
        feed: FeedConfig,
        session: requests.Session,
        clock: Callable[[], datetime] = _utcnow,
        cycle_timeout: float = CYCLE_TIMEOUT_SECONDS,
    ) -> None:
        self.feed = feed
        self.session = session
        self.clock = clock
        self.cycle_timeout = cycle_timeout
        self.cycles = 0

    def run_cycle(self) -> CycleResult:
        """Run a single fetch/filter/deliver pass."""
        ctx = CycleContext.start(self.feed, logger, timeout=self.cycle_timeout)
        result = CycleResult()
        ctx.log.debug("Starting cycle")

        try:
            remote = fetch_feed(
                self.session,
                self.feed.url,
                headers=self.feed.headers,
                basic_auth=self.feed.basic_auth,
                deadline=ctx.deadline,
            )
        except (FetchError, ParseError) as exc:
            ctx.log.error(
                "Failed to %s feed: %s",
                "parse" if isinstance(exc, ParseError) else "fetch",
                exc,
                extra={"error": str(exc)},
            )
            return result

        result.fetched = True
        new_items = select_new_items(
            remote.items, now=self.clock(), window=self.feed.interval
        )
        result.new_items = len(new_items)
        ctx.log.debug("Found %d new items", len(new_items))

        totals = DeliveryOutcome()
        for item in new_items:
            feed_item = FeedItem.from_feed(remote, item, self.feed.without_content)
            for target in self.feed.delivery_targets:
                totals += deliver(self.session, target, feed_item, ctx)

        result.delivered = totals.delivered
        result.failed = totals.failed
        if new_items:
            ctx.log.info(
                "Delivered %d messages for %d new items (%d failed)",
                totals.delivered,
                len(new_items),
                totals.failed,
            )
        return result

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Loop until ``stop_event`` is set, sleeping ``feed.interval`` between cycles."""
        stop_event = stop_event or threading.Event()
        interval = self.feed.interval.total_seconds()
        logger.info("Starting worker for feed '%s' every %s", self.feed.name, self.feed.interval)

        while not stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Unexpected error in cycle for feed '%s'",
                    self.feed.name,
                    extra=feed_tags(self.feed),
                )
            self.cycles += 1
            if stop_event.wait(interval):
                break

        logger.info("Worker for feed '%s' stopped", self.feed.name)
