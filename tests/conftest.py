import json
from datetime import timedelta
from email.utils import format_datetime

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from rss_relay.models import DiscordWebhook, FeedConfig


class FakeResponse:
    """Minimal stand-in for requests.Response used as a context manager."""

    def __init__(self, status_code=200, content=b"", text=None, headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = CaseInsensitiveDict(headers or {})
        self.text = text if text is not None else content.decode("utf-8", "replace")
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False


class FakeSession:
    """Records calls and answers them through per-method handlers."""

    def __init__(self, get=None, post=None):
        self._get = get
        self._post = post
        self.get_calls = []
        self.post_calls = []
        self.responses = []

    def _respond(self, handler, url, kwargs):
        if handler is None:
            raise AssertionError(f"unexpected request to {url}")
        response = handler(url, **kwargs)
        self.responses.append(response)
        return response

    def get(self, url, **kwargs):
        self.get_calls.append((url, kwargs))
        return self._respond(self._get, url, kwargs)

    def post(self, url, **kwargs):
        self.post_calls.append((url, kwargs))
        return self._respond(self._post, url, kwargs)


def rss_document(items, title="Example Channel", link="https://example.com/"):
    """Build an RSS 2.0 document; ``items`` is a list of (title, link, published, description)."""
    rendered = []
    for item_title, item_link, published, description in items:
        pub = f"<pubDate>{format_datetime(published, usegmt=True)}</pubDate>" if published else ""
        rendered.append(
            f"<item><title>{item_title}</title><link>{item_link}</link>{pub}"
            f"<description><![CDATA[{description}]]></description></item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>{link}</link>"
        "<description>Channel description</description>"
        f"{''.join(rendered)}"
        "</channel></rss>"
    ).encode("utf-8")


def json_feed_document(items, title="JSON Channel", home_page_url="https://json.example.com/"):
    """Build a JSON Feed 1.1 document; ``items`` is a list of (title, url, published, content_html)."""
    rendered = []
    for item_title, item_url, published, content_html in items:
        entry = {"id": item_url, "title": item_title, "url": item_url, "content_html": content_html}
        if published is not None:
            entry["date_published"] = published.isoformat()
        rendered.append(entry)
    return json.dumps(
        {
            "version": "https://jsonfeed.org/version/1.1",
            "title": title,
            "description": "JSON channel description",
            "home_page_url": home_page_url,
            "items": rendered,
        }
    ).encode("utf-8")


@pytest.fixture
def make_feed():
    def factory(**overrides):
        values = dict(
            name="Example",
            url="https://example.com/feed.xml",
            interval=timedelta(minutes=5),
            delivery_targets=(DiscordWebhook(urls=("https://discord.test/hook",)),),
        )
        values.update(overrides)
        return FeedConfig(**values)

    return factory
