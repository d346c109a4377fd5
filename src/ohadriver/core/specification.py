"""
Load test specification.

A TestSpecification is the immutable description of one load test:
target, method, concurrency, duration, per-request timeout, headers and
an optional body.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import urlsplit

from ohadriver.core.errors import ErrorKind, OhaDriverError

logger = logging.getLogger(__name__)

VALID_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
METHODS_WITH_BODY = ("POST", "PUT", "PATCH")
VALID_SCHEMES = ("http", "https")

MAX_CONCURRENCY = 1000
MAX_DURATION = 3600
MAX_TIMEOUT = 300

_FORM_DATA = re.compile(r"^[^=&]+=[^&]*(&[^=&]+=[^&]*)*$")

# Stored JSON key -> field name
_KEY_ALIASES = {
    "concurrentConnections": "concurrency",
    "concurrent_connections": "concurrency",
}


@dataclass(frozen=True)
class TestSpecification:
    """Immutable input for one load test run."""

    # Target URL (must carry an explicit http/https scheme)
    url: str

    # HTTP method
    method: str = "GET"

    # Number of concurrent connections
    concurrency: int = 1

    # Test duration in seconds
    duration: int = 2

    # Per-request timeout in seconds
    timeout: int = 30

    # Request headers (name -> value, names are case-sensitive)
    headers: Mapping[str, str] = field(default_factory=dict)

    # Optional request body
    body: str = ""

    __test__ = False  # not a pytest test class

    def __post_init__(self):
        object.__setattr__(self, "method", str(self.method).upper())
        object.__setattr__(self, "headers", dict(self.headers or {}))

    @property
    def sends_body(self) -> bool:
        """Whether the body is passed to the target for this method."""
        return bool(self.body) and self.method in METHODS_WITH_BODY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TestSpecification":
        """
        Build a specification from a configuration record.

        Accepts both the stored camelCase keys and snake_case field names;
        unknown keys (name, createdAt, ...) are ignored.
        """
        known = {"url", "method", "concurrency", "duration", "timeout", "headers", "body"}
        kwargs = {}
        for key, value in data.items():
            name = _KEY_ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value

        if "url" not in kwargs:
            raise OhaDriverError.of(
                ErrorKind.INVALID_SPECIFICATION,
                "Invalid specification: URL is required",
                "Provide the target URL, e.g. http://localhost:8080/",
            )
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "concurrentConnections": self.concurrency,
            "duration": self.duration,
            "timeout": self.timeout,
            "headers": dict(self.headers),
            "body": self.body,
        }

    def validation_errors(self) -> list[str]:
        """Return every rule this specification breaks."""
        errors = []

        if not self.url or not isinstance(self.url, str):
            errors.append("URL is required")
        else:
            parts = urlsplit(self.url)
            if not parts.scheme:
                errors.append("URL must include protocol (http:// or https://)")
            elif parts.scheme.lower() not in VALID_SCHEMES:
                errors.append(f"URL scheme '{parts.scheme}' is not supported")
            elif not parts.netloc:
                errors.append("URL format is invalid")

        if self.method not in VALID_METHODS:
            errors.append(f"HTTP method must be one of: {', '.join(VALID_METHODS)}")

        if not _is_int(self.concurrency) or not 1 <= self.concurrency <= MAX_CONCURRENCY:
            errors.append(f"Concurrent connections must be between 1 and {MAX_CONCURRENCY}")

        if not _is_int(self.duration) or not 1 <= self.duration <= MAX_DURATION:
            errors.append(f"Duration must be between 1 and {MAX_DURATION} seconds")

        if not _is_int(self.timeout) or not 1 <= self.timeout <= MAX_TIMEOUT:
            errors.append(f"Timeout must be between 1 and {MAX_TIMEOUT} seconds")

        for name, value in self.headers.items():
            if not isinstance(name, str) or not isinstance(value, str):
                errors.append("Headers must be key-value pairs of strings")
                break
            if not name.strip():
                errors.append("Header names cannot be empty")
                break

        if not isinstance(self.body, str):
            errors.append("Request body must be a string")
        elif self.sends_body and not (_is_json(self.body) or _FORM_DATA.match(self.body)):
            errors.append("Request body must be valid JSON or form data")

        return errors

    def validate(self):
        """
        Check the specification against the validation rules.

        Raises:
            OhaDriverError: INVALID_SPECIFICATION listing every violation
        """
        errors = self.validation_errors()
        if errors:
            raise OhaDriverError.of(
                ErrorKind.INVALID_SPECIFICATION,
                f"Invalid specification: {', '.join(errors)}",
                "Check the URL and test parameters for correctness",
                errors=errors,
            )

        if self.timeout > self.duration:
            logger.warning(
                f"Request timeout ({self.timeout}s) exceeds test duration ({self.duration}s)"
            )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True
