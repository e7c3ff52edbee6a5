"""Command-line interface for the rss_relay application."""

from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .config import load_configuration
from .errors import ConfigurationError, ValidationError
from .supervisor import Supervisor

logger = logging.getLogger(__name__)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

EXIT_CONFIG_INVALID = 68
EXIT_CONFIG_UNREADABLE = 69

# Attributes every LogRecord has; anything else was passed through ``extra``.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Poll RSS, Atom and JSON feeds and relay new items to Discord."
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("RSS_RELAY_CONFIG", "config.yaml"),
        help="Path to the configuration file (.json, .json5, .yaml, .yml, .toml or .xml).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (e.g. DEBUG, INFO, WARNING).",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file.",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Emit human readable lines or one JSON object per record.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle for every feed and exit.",
    )
    return parser


def configure_logging(
    level_name: str, log_file: Optional[str] = None, log_format: str = "text"
) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(args.log_level, args.log_file, args.log_format)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        config = load_configuration(args.config)
    except ValidationError as exc:
        logger.error("Configuration is invalid:\n%s", exc.to_json())
        return EXIT_CONFIG_INVALID
    except (ConfigurationError, FileNotFoundError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return EXIT_CONFIG_UNREADABLE

    logger.info("Starting rss_relay with %d feeds", len(config.feeds))
    supervisor = Supervisor(config)

    if args.once:
        results = supervisor.run_once()
        failed = sum(1 for result in results if not result.fetched)
        logger.info(
            "Single run finished: %d feeds processed, %d failed to fetch",
            len(results),
            failed,
        )
        return 0

    supervisor.run()
    logger.info("Shutting down rss_relay")
    return 0
