"""Feed retrieval, parsing and new-item selection."""

from __future__ import annotations

import calendar
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional

import feedparser
import requests
from requests.structures import CaseInsensitiveDict

from . import __version__
from .context import Deadline, DeadlineExceeded
from .errors import FetchError, ParseError
from .models import BasicAuth, NormalizedFeed, NormalizedItem

logger = logging.getLogger(__name__)

USER_AGENT = f"rss-relay/{__version__}"


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser's UTC struct_time values to aware datetimes."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def build_request_headers(extra: Optional[Mapping[str, str]] = None) -> CaseInsensitiveDict:
    """Return the fixed request headers with caller headers appended."""
    headers = CaseInsensitiveDict({"Accept": "*/*", "User-Agent": USER_AGENT})
    for key, value in (extra or {}).items():
        if key in headers:
            headers[key] = f"{headers[key]}, {value}"
        else:
            headers[key] = value
    return headers


def fetch_feed(
    session: requests.Session,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    basic_auth: Optional[BasicAuth] = None,
    deadline: Optional[Deadline] = None,
) -> NormalizedFeed:
    """Download and parse a single feed document."""
    auth = None
    if basic_auth is not None and basic_auth.is_set:
        auth = (basic_auth.username, basic_auth.password)

    try:
        timeout = deadline.timeout() if deadline is not None else None
        with session.get(
            url, headers=build_request_headers(headers), auth=auth, timeout=timeout
        ) as response:
            response.raise_for_status()
            content = response.content
            content_type = response.headers.get("Content-Type", "")
    except DeadlineExceeded as exc:
        raise FetchError(f"failed to fetch {url}: {exc}") from exc
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "an error"
        raise FetchError(f"feed responded with {status}: {url}") from exc
    except requests.RequestException as exc:
        raise FetchError(f"failed to fetch {url}: {exc}") from exc

    logger.debug("Fetched %d bytes from %s", len(content), url)
    return parse_feed(content, content_type)


def parse_feed(content: bytes, content_type: str = "") -> NormalizedFeed:
    """Parse an RSS, Atom or JSON Feed document."""
    if _looks_like_json(content, content_type):
        return _parse_json_feed(content)

    parsed = feedparser.parse(content)
    if not getattr(parsed, "version", ""):
        reason = getattr(parsed, "bozo_exception", None) or "unrecognised feed format"
        raise ParseError(f"failed to parse feed: {reason}")

    channel = getattr(parsed, "feed", {}) or {}
    items = [_normalize_entry(entry) for entry in parsed.entries]
    return NormalizedFeed(
        channel_title=channel.get("title", ""),
        channel_description=channel.get("subtitle", ""),
        channel_url=channel.get("link", ""),
        items=items,
    )


def _looks_like_json(content: bytes, content_type: str) -> bool:
    first = content.lstrip(b"\xef\xbb\xbf \t\r\n")[:1]
    if first == b"{":
        return True
    return "json" in (content_type or "").lower() and first != b"<"


def parse_json_date(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp from a JSON Feed into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug("Ignoring unparseable JSON Feed date: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_json_feed(content: bytes) -> NormalizedFeed:
    try:
        document = json.loads(content)
    except (UnicodeDecodeError, ValueError) as exc:
        raise ParseError(f"failed to parse feed: {exc}") from exc

    version = document.get("version", "") if isinstance(document, dict) else ""
    if not isinstance(version, str) or "jsonfeed.org" not in version:
        raise ParseError("failed to parse feed: not a JSON Feed document")

    items = []
    for entry in document.get("items") or []:
        if not isinstance(entry, dict):
            continue
        description = (
            entry.get("content_html") or entry.get("content_text") or entry.get("summary")
        )
        items.append(
            NormalizedItem(
                title=entry.get("title") or "",
                description=description or "",
                link=entry.get("url") or entry.get("external_url") or "",
                published_at=parse_json_date(entry.get("date_published")),
                updated_at=parse_json_date(entry.get("date_modified")),
            )
        )

    return NormalizedFeed(
        channel_title=document.get("title") or "",
        channel_description=document.get("description") or "",
        channel_url=document.get("home_page_url") or "",
        items=items,
    )


def _normalize_entry(entry: Any) -> NormalizedItem:
    description = getattr(entry, "summary", None)
    if not description:
        summary_detail = getattr(entry, "summary_detail", None)
        if summary_detail:
            description = summary_detail.get("value")
    if not description:
        content = getattr(entry, "content", None)
        if content:
            try:
                description = content[0].get("value")
            except (TypeError, KeyError, IndexError, AttributeError):
                description = None

    return NormalizedItem(
        title=getattr(entry, "title", None) or "",
        description=description or "",
        link=getattr(entry, "link", None) or "",
        published_at=to_datetime(getattr(entry, "published_parsed", None)),
        updated_at=to_datetime(getattr(entry, "updated_parsed", None)),
    )


def is_new_item(item: NormalizedItem, cutoff: datetime) -> bool:
    """Return True when either timestamp falls strictly after ``cutoff``."""
    if item.published_at is not None and item.published_at > cutoff:
        return True
    if item.updated_at is not None and item.updated_at > cutoff:
        return True
    return False


def select_new_items(
    items: Iterable[NormalizedItem], now: datetime, window: timedelta
) -> List[NormalizedItem]:
    """Keep the items published or updated within ``window`` before ``now``."""
    cutoff = now - window
    selected: List[NormalizedItem] = []
    for item in items:
        if is_new_item(item, cutoff):
            selected.append(item)
        else:
            logger.debug("Skipping entry older than cutoff (%s): %s", cutoff, item.link)
    return selected
