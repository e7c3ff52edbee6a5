"""Rendering helpers for outbound chat messages."""

from __future__ import annotations

import re
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import (
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    PageElement,
    ProcessingInstruction,
    Tag,
)

from .models import FeedItem
from .templating import get_environment

_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)
_SKIPPED_TAGS = {"script", "style", "head", "title", "noscript"}
_BLOCK_TAGS = {"p", "div", "section", "article", "header", "footer", "figure", "table"}


def html_to_markdown(raw_value: Optional[str]) -> str:
    """Convert an HTML fragment to the markdown subset Discord understands."""
    if not raw_value:
        return ""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = _render_children(soup)
    text = re.sub(r"[ \t]+\n", "\n", text)
    # nested list items keep their indentation
    text = re.sub(r"\n[ \t]+(?=[^ \t\-\d])", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _render_children(node: Tag) -> str:
    return "".join(_render(child) for child in node.children)


def _render(node: PageElement) -> str:
    if isinstance(node, _SKIPPED_STRINGS):
        return ""
    if isinstance(node, NavigableString):
        return re.sub(r"\s+", " ", str(node))
    if not isinstance(node, Tag):
        return ""

    name = node.name
    if name in _SKIPPED_TAGS:
        return ""
    if name == "br":
        return "\n"
    if name == "hr":
        return "\n\n* * *\n\n"
    if name == "img":
        src = node.get("src")
        if not src:
            return ""
        return f"![{node.get('alt', '')}]({src})"
    if name == "pre":
        return f"\n\n```\n{node.get_text().strip(chr(10))}\n```\n\n"

    inner = _render_children(node)
    if name in ("b", "strong"):
        return _wrap(inner, "**")
    if name in ("i", "em"):
        return _wrap(inner, "_")
    if name in ("s", "del", "strike"):
        return _wrap(inner, "~~")
    if name == "code":
        return _wrap(inner, "`")
    if name == "a":
        href = node.get("href")
        label = inner.strip()
        if not href:
            return inner
        if not label or label == href:
            return href
        return f"[{label}]({href})"
    if name in ("h1", "h2", "h3", "h4", "h5", "h6"):
        return f"\n\n{'#' * int(name[1])} {inner.strip()}\n\n"
    if name in ("ul", "ol"):
        return f"\n\n{_render_list(node)}\n\n"
    if name == "blockquote":
        lines = inner.strip().splitlines()
        quoted = "\n".join(f"> {line}".rstrip() for line in lines)
        return f"\n\n{quoted}\n\n"
    if name in _BLOCK_TAGS:
        return f"\n\n{inner.strip()}\n\n"
    return inner


def _render_list(node: Tag) -> str:
    lines: List[str] = []
    ordered = node.name == "ol"
    for index, child in enumerate(node.find_all("li", recursive=False), start=1):
        marker = f"{index}." if ordered else "-"
        body = re.sub(r"\n{2,}", "\n", _render_children(child).strip())
        body = body.replace("\n", "\n  ")
        lines.append(f"{marker} {body}")
    return "\n".join(lines)


def _wrap(inner: str, marker: str) -> str:
    stripped = inner.strip()
    if not stripped:
        return inner
    leading = inner[: len(inner) - len(inner.lstrip())]
    trailing = inner[len(inner.rstrip()) :]
    return f"{leading}{marker}{stripped}{marker}{trailing}"


def build_discord_message(item: FeedItem) -> str:
    """Render the message body posted to a Discord webhook."""
    content = html_to_markdown(item.item_description)
    if content:
        content += "\n\n"
    template = get_environment().get_template("discord.md.j2")
    return template.render(title=item.item_title, content=content, url=item.item_url)
