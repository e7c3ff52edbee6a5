"""Outbound delivery of feed items to chat integrations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from jinja2 import TemplateError

from .context import CycleContext, Deadline, DeadlineExceeded
from .errors import DeliveryError
from .models import DeliveryTarget, DiscordWebhook, FeedItem, TelegramBot
from .renderers import build_discord_message

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    """Counts of attempted deliveries for one item and one target."""

    delivered: int = 0
    failed: int = 0

    def __iadd__(self, other: "DeliveryOutcome") -> "DeliveryOutcome":
        self.delivered += other.delivered
        self.failed += other.failed
        return self


def deliver_to_discord(
    session: requests.Session,
    webhook_url: str,
    item: FeedItem,
    logo_url: str = "",
    deadline: Optional[Deadline] = None,
) -> None:
    """Post one feed item to a Discord webhook, raising DeliveryError on failure."""
    try:
        content = build_discord_message(item)
    except TemplateError as exc:
        raise DeliveryError(f"failed to render discord message: {exc}") from exc

    try:
        body = json.dumps(
            {
                "username": item.channel_title,
                "avatar_url": logo_url or "",
                "content": content,
            }
        )
    except (TypeError, ValueError) as exc:
        raise DeliveryError(f"failed to encode discord webhook payload: {exc}") from exc

    try:
        timeout = deadline.timeout() if deadline is not None else None
        with session.post(
            webhook_url,
            data=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            allow_redirects=False,
        ) as response:
            if response.status_code >= 400:
                response_body = response.text
                raise DeliveryError(
                    f"discord webhook responded with {response.status_code} ({response_body})",
                    status_code=response.status_code,
                    body=response_body,
                )
    except DeadlineExceeded as exc:
        raise DeliveryError(f"failed to send discord webhook: {exc}") from exc
    except requests.RequestException as exc:
        raise DeliveryError(f"failed to send discord webhook: {exc}") from exc

    logger.debug("Delivered '%s' to discord webhook", item.item_title)


def deliver_to_telegram(
    session: requests.Session,
    target: TelegramBot,
    item: FeedItem,
    deadline: Optional[Deadline] = None,
) -> bool:
    """Telegram delivery is not implemented; returns False without sending."""
    logger.info(
        "Telegram delivery is not implemented; skipping '%s' for chat %s",
        item.item_title,
        target.chat_id,
    )
    return False


def deliver(
    session: requests.Session,
    target: DeliveryTarget,
    item: FeedItem,
    ctx: CycleContext,
) -> DeliveryOutcome:
    """Deliver ``item`` to every destination of ``target``.

    Each failed attempt is logged once through the cycle's logger and does
    not prevent the attempts that follow.
    """
    outcome = DeliveryOutcome()

    if isinstance(target, DiscordWebhook):
        for index, webhook_url in enumerate(target.urls):
            try:
                deliver_to_discord(
                    session,
                    webhook_url,
                    item,
                    logo_url=ctx.feed.logo_url,
                    deadline=ctx.deadline,
                )
            except DeliveryError as exc:
                outcome.failed += 1
                ctx.log.error(
                    "Failed to deliver to Discord: %s",
                    exc,
                    extra={
                        "error": str(exc),
                        "destination": f"discord[{index}]",
                        "status_code": exc.status_code,
                    },
                )
            else:
                outcome.delivered += 1
    elif isinstance(target, TelegramBot):
        if deliver_to_telegram(session, target, item, deadline=ctx.deadline):
            outcome.delivered += 1
    else:
        raise TypeError(f"Unsupported delivery target: {type(target).__name__}")

    return outcome
