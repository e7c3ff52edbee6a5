"""Configuration loading and validation."""

from __future__ import annotations

import logging
import re
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from xml.etree import ElementTree as ET

import json5
import yaml

from .errors import ConfigurationError, ValidationError
from .models import (
    BasicAuth,
    Configuration,
    DeliveryTarget,
    DiscordWebhook,
    FeedConfig,
    TelegramBot,
)

logger = logging.getLogger(__name__)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_BARE_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_DECODERS = (".json", ".json5", ".yaml", ".yml", ".toml", ".xml")


def parse_duration(value: Any) -> timedelta:
    """Parse a duration such as ``"1h30m"`` or ``"90s"``; bare numbers are seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if not text:
        raise ValueError(f"invalid duration: {value!r}")

    if _BARE_NUMBER.fullmatch(text):
        return timedelta(seconds=sign * float(text))

    seconds = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=sign * seconds)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _webhook_urls(value: Any) -> List[str]:
    """Accept either a single URL or a list of URLs."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item]
    raise ConfigurationError(
        f"discord_webhook_url: provided {type(value).__name__}, expected string or list of strings"
    )


def _delivery_targets(delivery: Mapping[str, Any]) -> List[DeliveryTarget]:
    targets: List[DeliveryTarget] = []
    urls = _webhook_urls(delivery.get("discord_webhook_url"))
    if urls:
        targets.append(DiscordWebhook(urls=tuple(urls)))
    bot_token = delivery.get("telegram_bot_token") or ""
    if bot_token:
        targets.append(
            TelegramBot(
                bot_token=str(bot_token),
                chat_id=str(delivery.get("telegram_chat_id") or ""),
            )
        )
    return targets


def _feed_from_mapping(index: int, data: Mapping[str, Any]) -> FeedConfig:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"feeds.{index}: expected a mapping")

    raw_interval = data.get("interval")
    interval = timedelta(0)
    if raw_interval not in (None, ""):
        try:
            interval = parse_duration(raw_interval)
        except ValueError as exc:
            raise ConfigurationError(f"feeds.{index}.interval: {exc}") from exc

    auth = data.get("basic_auth") or {}
    headers = data.get("headers") or {}
    return FeedConfig(
        name=str(data.get("name") or ""),
        url=str(data.get("url") or ""),
        logo_url=str(data.get("logo") or ""),
        interval=interval,
        without_content=_as_bool(data.get("without_content", False)),
        basic_auth=BasicAuth(
            username=str(auth.get("username") or ""),
            password=str(auth.get("password") or ""),
        ),
        headers={str(key): str(value) for key, value in headers.items()},
        delivery_targets=tuple(_delivery_targets(data.get("delivery") or {})),
    )


def configuration_from_mapping(data: Any) -> Configuration:
    """Build a Configuration from decoded JSON, YAML or TOML data."""
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("configuration root must be a mapping")
    feeds = data.get("feeds") or []
    if not isinstance(feeds, list):
        raise ConfigurationError("feeds must be a list")
    return Configuration(
        feeds=[_feed_from_mapping(index, feed) for index, feed in enumerate(feeds)]
    )


def _xml_value(node: ET.Element, name: str) -> Optional[str]:
    value = node.attrib.get(name)
    if value is None:
        value = node.findtext(name)
    return value.strip() if value is not None else None


def _feed_mapping_from_xml(node: ET.Element) -> Dict[str, Any]:
    feed: Dict[str, Any] = {
        "name": _xml_value(node, "name"),
        "url": _xml_value(node, "url"),
        "logo": _xml_value(node, "logo"),
        "interval": _xml_value(node, "interval"),
        "without_content": _xml_value(node, "without-content") or "false",
    }

    auth_node = node.find("basic-auth")
    if auth_node is not None:
        feed["basic_auth"] = {
            "username": _xml_value(auth_node, "username"),
            "password": _xml_value(auth_node, "password"),
        }

    feed["headers"] = {
        header.attrib["name"]: (header.text or "").strip()
        for header in node.findall("header")
        if header.attrib.get("name")
    }

    delivery_node = node.find("delivery")
    if delivery_node is not None:
        delivery: Dict[str, Any] = {
            "discord_webhook_url": [
                (element.text or "").strip()
                for element in delivery_node.findall("discord-webhook-url")
                if element.text and element.text.strip()
            ]
        }
        telegram = delivery_node.find("telegram")
        if telegram is not None:
            delivery["telegram_bot_token"] = _xml_value(telegram, "bot-token")
            delivery["telegram_chat_id"] = _xml_value(telegram, "chat-id")
        feed["delivery"] = delivery
    return feed


def _decode_xml(handle) -> Dict[str, Any]:
    root = ET.parse(handle).getroot()
    return {"feeds": [_feed_mapping_from_xml(node) for node in root.findall("feed")]}


def parse_configuration(path: str) -> Configuration:
    """Read a JSON (JSON5 syntax), YAML, TOML or XML configuration file."""
    if not path:
        raise ConfigurationError("config path is empty")

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    suffix = config_path.suffix.lower()
    if suffix not in _DECODERS:
        raise ConfigurationError(f"unsupported config file format: {suffix or path}")

    logger.info("Loading configuration from %s", config_path)
    try:
        if suffix in (".json", ".json5"):
            with config_path.open("r", encoding="utf-8") as handle:
                data = json5.load(handle)
        elif suffix in (".yaml", ".yml"):
            with config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        elif suffix == ".toml":
            with config_path.open("rb") as handle:
                data = tomllib.load(handle)
        else:
            with config_path.open("rb") as handle:
                data = _decode_xml(handle)
    except (ValueError, yaml.YAMLError, ET.ParseError) as exc:
        raise ConfigurationError(f"failed to decode config file: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"failed to open config file: {exc}") from exc

    config = configuration_from_mapping(data)
    logger.info("Loaded %d feeds from configuration", len(config.feeds))
    return config


def validate_configuration(config: Configuration) -> None:
    """Raise ValidationError listing every problem found in ``config``."""
    issues = ValidationError()

    if not config.feeds:
        issues.add_issue("feeds", "at least one feed is required")

    for index, feed in enumerate(config.feeds):
        if not feed.name:
            issues.add_issue(f"feeds.{index}.name", "name is required")
        if not feed.url:
            issues.add_issue(f"feeds.{index}.url", "url is required")
        if feed.interval == timedelta(0):
            issues.add_issue(f"feeds.{index}.interval", "interval is required")
        elif feed.interval < timedelta(0):
            issues.add_issue(f"feeds.{index}.interval", "interval must be greater than 0")
        if not feed.delivery_targets:
            issues.add_issue(
                f"feeds.{index}.delivery", "at least one delivery method is required"
            )
        for target in feed.delivery_targets:
            if isinstance(target, TelegramBot) and not target.chat_id:
                issues.add_issue(
                    f"feeds.{index}.delivery.telegram_chat_id",
                    "telegram chat ID is required if telegram bot token is not empty",
                )

    if issues.has_issues():
        raise issues


def load_configuration(path: str) -> Configuration:
    """Parse and validate the configuration at ``path``."""
    config = parse_configuration(path)
    validate_configuration(config)
    return config
