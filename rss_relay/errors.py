"""Exception types raised by rss_relay."""

from __future__ import annotations

import json
from typing import Dict, List, Optional


class RelayError(Exception):
    """Base class for recoverable errors raised while relaying a feed."""


class FetchError(RelayError):
    """The feed document could not be retrieved."""


class ParseError(RelayError):
    """The retrieved document is not a recognisable feed."""


class DeliveryError(RelayError):
    """A single outbound delivery attempt failed."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConfigurationError(ValueError):
    """The configuration file could not be read or decoded."""


class ValidationError(ValueError):
    """The decoded configuration violates one or more rules."""

    def __init__(self, issues: Optional[List[Dict[str, str]]] = None) -> None:
        self.issues: List[Dict[str, str]] = list(issues or [])
        super().__init__(f"validation error: {self.issues}")

    def add_issue(self, field: str, message: str) -> None:
        self.issues.append({"field": field, "message": message})
        self.args = (f"validation error: {self.issues}",)

    def has_issues(self) -> bool:
        return bool(self.issues)

    def to_json(self) -> str:
        return json.dumps({"issues": self.issues}, indent=2)
