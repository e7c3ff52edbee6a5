"""Shared data models for rss_relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class BasicAuth:
    """Credentials sent with the feed request."""

    username: str = ""
    password: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.username or self.password)


@dataclass(frozen=True)
class DiscordWebhook:
    """Deliver items to one or more Discord webhook URLs."""

    urls: Tuple[str, ...]


@dataclass(frozen=True)
class TelegramBot:
    """Deliver items to a Telegram chat through a bot."""

    bot_token: str
    chat_id: str


DeliveryTarget = Union[DiscordWebhook, TelegramBot]


@dataclass(frozen=True)
class FeedConfig:
    """Configuration for a single polled feed."""

    name: str
    url: str
    interval: timedelta
    delivery_targets: Tuple[DeliveryTarget, ...]
    logo_url: str = ""
    without_content: bool = False
    basic_auth: BasicAuth = field(default_factory=BasicAuth)
    headers: Dict[str, str] = field(default_factory=dict, hash=False)


@dataclass
class Configuration:
    """Top level configuration handed to the supervisor."""

    feeds: List[FeedConfig] = field(default_factory=list)


@dataclass
class NormalizedItem:
    """A single entry as returned by the feed parser."""

    title: str
    description: str
    link: str
    published_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class NormalizedFeed:
    """Channel metadata plus its entries, in document order."""

    channel_title: str
    channel_description: str
    channel_url: str
    items: List[NormalizedItem] = field(default_factory=list)


ZERO_ITEM_DATE = "Jan  1 00:00:00"


def format_item_date(value: Optional[datetime]) -> str:
    """Format a timestamp as ``Jan _2 15:04:05`` (space padded day).

    Items without a timestamp get the zero time, ``Jan  1 00:00:00``.
    """
    if value is None:
        return ZERO_ITEM_DATE
    return f"{value:%b} {value.day:>2} {value:%H:%M:%S}"


@dataclass
class FeedItem:
    """Delivery-ready representation of one new feed item."""

    channel_title: str
    channel_description: str
    channel_url: str
    item_title: str
    item_description: str
    item_date: str
    item_url: str

    @classmethod
    def from_feed(
        cls, feed: NormalizedFeed, item: NormalizedItem, without_content: bool = False
    ) -> "FeedItem":
        return cls(
            channel_title=feed.channel_title,
            channel_description=feed.channel_description,
            channel_url=feed.channel_url,
            item_title=item.title,
            item_description="" if without_content else item.description,
            item_date=format_item_date(item.published_at),
            item_url=item.link,
        )
