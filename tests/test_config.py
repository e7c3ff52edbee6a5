import json
import textwrap
from datetime import timedelta

import pytest

from rss_relay.config import (
    load_configuration,
    parse_configuration,
    parse_duration,
    validate_configuration,
)
from rss_relay.errors import ConfigurationError, ValidationError
from rss_relay.models import BasicAuth, Configuration, DiscordWebhook, TelegramBot


def test_parse_yaml_configuration(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        textwrap.dedent(
            """\
            feeds:
              - name: Example
                url: https://example.com/feed.xml
                logo: https://example.com/logo.png
                interval: 15m
                without_content: true
                basic_auth:
                  username: user
                  password: secret
                headers:
                  X-Token: abc
                delivery:
                  discord_webhook_url: https://discord.test/one
                  telegram_bot_token: token
                  telegram_chat_id: "42"
            """
        ),
        encoding="utf-8",
    )

    config = parse_configuration(str(path))

    feed = config.feeds[0]
    assert feed.name == "Example"
    assert feed.logo_url == "https://example.com/logo.png"
    assert feed.interval == timedelta(minutes=15)
    assert feed.without_content is True
    assert feed.basic_auth == BasicAuth("user", "secret")
    assert feed.headers == {"X-Token": "abc"}
    assert feed.delivery_targets == (
        DiscordWebhook(urls=("https://discord.test/one",)),
        TelegramBot(bot_token="token", chat_id="42"),
    )


def test_parse_json_configuration_accepts_webhook_list(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "feeds": [
                    {
                        "name": "Example",
                        "url": "https://example.com/feed.xml",
                        "interval": "1h30m",
                        "delivery": {
                            "discord_webhook_url": [
                                "https://discord.test/one",
                                "https://discord.test/two",
                            ]
                        },
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    feed = parse_configuration(str(path)).feeds[0]

    assert feed.interval == timedelta(hours=1, minutes=30)
    assert feed.delivery_targets == (
        DiscordWebhook(urls=("https://discord.test/one", "https://discord.test/two")),
    )
    assert feed.basic_auth.is_set is False


@pytest.mark.parametrize("filename", ["config.json", "config.json5"])
def test_parse_json_configuration_allows_comments_and_trailing_commas(tmp_path, filename):
    path = tmp_path / filename
    path.write_text(
        textwrap.dedent(
            """\
            // relay settings
            {
              feeds: [
                {
                  name: "Example",
                  url: "https://example.com/feed.xml",
                  interval: "5m", /* poll often */
                  delivery: {discord_webhook_url: "https://discord.test/one",},
                },
              ],
            }
            """
        ),
        encoding="utf-8",
    )

    feed = parse_configuration(str(path)).feeds[0]

    assert feed.name == "Example"
    assert feed.interval == timedelta(minutes=5)
    assert feed.delivery_targets == (DiscordWebhook(urls=("https://discord.test/one",)),)


def test_parse_toml_configuration(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        textwrap.dedent(
            """\
            [[feeds]]
            name = "Example"
            url = "https://example.com/feed.xml"
            interval = "30s"

            [feeds.delivery]
            discord_webhook_url = "https://discord.test/one"
            """
        ),
        encoding="utf-8",
    )

    feed = parse_configuration(str(path)).feeds[0]

    assert feed.interval == timedelta(seconds=30)
    assert feed.delivery_targets == (DiscordWebhook(urls=("https://discord.test/one",)),)


def test_parse_xml_configuration(tmp_path):
    path = tmp_path / "config.xml"
    path.write_text(
        textwrap.dedent(
            """\
            <config>
              <feed name="Example" url="https://example.com/feed.xml" interval="10m" without-content="true">
                <basic-auth username="user" password="secret" />
                <header name="X-Token">abc</header>
                <delivery>
                  <discord-webhook-url>https://discord.test/one</discord-webhook-url>
                  <discord-webhook-url>https://discord.test/two</discord-webhook-url>
                </delivery>
              </feed>
            </config>
            """
        ),
        encoding="utf-8",
    )

    feed = parse_configuration(str(path)).feeds[0]

    assert feed.interval == timedelta(minutes=10)
    assert feed.without_content is True
    assert feed.basic_auth == BasicAuth("user", "secret")
    assert feed.headers == {"X-Token": "abc"}
    assert feed.delivery_targets == (
        DiscordWebhook(urls=("https://discord.test/one", "https://discord.test/two")),
    )


def test_parse_configuration_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        parse_configuration("")

    with pytest.raises(FileNotFoundError):
        parse_configuration(str(tmp_path / "missing.yaml"))

    unsupported = tmp_path / "config.ini"
    unsupported.write_text("[feeds]", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="unsupported"):
        parse_configuration(str(unsupported))

    broken = tmp_path / "config.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="decode"):
        parse_configuration(str(broken))

    bad_interval = tmp_path / "interval.yaml"
    bad_interval.write_text("feeds:\n  - name: a\n    interval: soon\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="feeds.0.interval"):
        parse_configuration(str(bad_interval))


@pytest.mark.parametrize(
    "value, expected",
    [
        ("5m", timedelta(minutes=5)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5h", timedelta(minutes=90)),
        ("250ms", timedelta(milliseconds=250)),
        ("-1m", timedelta(minutes=-1)),
        ("45", timedelta(seconds=45)),
        (60, timedelta(minutes=1)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "m", "5 minutes", "1h-3m", True, None])
def test_parse_duration_rejects_invalid_values(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_validate_configuration_collects_every_issue(make_feed):
    config = Configuration(
        feeds=[
            make_feed(name="", url="", interval=timedelta(0), delivery_targets=()),
            make_feed(
                interval=timedelta(minutes=-1),
                delivery_targets=(TelegramBot(bot_token="token", chat_id=""),),
            ),
        ]
    )

    with pytest.raises(ValidationError) as excinfo:
        validate_configuration(config)

    fields = [issue["field"] for issue in excinfo.value.issues]
    assert fields == [
        "feeds.0.name",
        "feeds.0.url",
        "feeds.0.interval",
        "feeds.0.delivery",
        "feeds.1.interval",
        "feeds.1.delivery.telegram_chat_id",
    ]
    assert json.loads(excinfo.value.to_json())["issues"][0]["message"] == "name is required"


def test_validate_configuration_requires_feeds():
    with pytest.raises(ValidationError) as excinfo:
        validate_configuration(Configuration())

    assert excinfo.value.issues == [
        {"field": "feeds", "message": "at least one feed is required"}
    ]


def test_load_configuration_validates(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "feeds:\n  - name: a\n    url: https://example.com\n    interval: 5m\n",
        encoding="utf-8",
    )

    with pytest.raises(ValidationError):
        load_configuration(str(path))
