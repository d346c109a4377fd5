"""
Command assembly.

Turns a TestSpecification into the command line for oha. Argument order
is fixed:

    <binary> -c N -z Ds -t Ts -m METHOD --no-tui [-H 'K: V']... [-d BODY] URL

Every externally supplied token (binary path, header, body, URL) is quoted
individually for the host platform; flags and their literal values are not.
"""

from __future__ import annotations

import logging
import re
import sys

from ohadriver.command.locator import BinaryLocator, default_locator
from ohadriver.core.errors import ErrorKind, OhaDriverError
from ohadriver.core.specification import TestSpecification
from ohadriver.errors.classifier import binary_not_found

logger = logging.getLogger(__name__)

_DANGEROUS_COMMANDS = re.compile(r"\b(rm|del|format|shutdown|reboot)\s+", re.IGNORECASE)
_REDIRECTION = re.compile(r"[<>]")
_LINE_BREAK = re.compile(r"[\r\n\x00]")

# '&' is a query separator, so URLs are allowed to carry it
_URL_METACHARACTERS = re.compile(r"[;|`$(){}]")
_HEADER_METACHARACTERS = re.compile(r"[;&|`$(){}\[\]]")
_BODY_METACHARACTERS = re.compile(r"[;&|`$()]")


def quote_argument(arg: str, platform: str | None = None) -> str:
    """
    Quote one argument for the platform shell.

    Windows: wrapped in double quotes, embedded double quotes doubled.
    Elsewhere: wrapped in single quotes, embedded single quotes closed,
    emitted inside double quotes and reopened.
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        return '"' + arg.replace('"', '""') + '"'
    return "'" + arg.replace("'", "'\"'\"'") + "'"


def find_unsafe(value: str, metacharacters: re.Pattern) -> str | None:
    """Return a description of the first unsafe construct in value, if any."""
    match = metacharacters.search(value)
    if match:
        return f"shell metacharacter {match.group()!r}"
    if _REDIRECTION.search(value):
        return "redirection operator"
    if _LINE_BREAK.search(value):
        return "line break"
    match = _DANGEROUS_COMMANDS.search(value)
    if match:
        return f"command sequence {match.group(1)!r}"
    return None


class CommandBuilder:
    """
    Builds oha command strings from test specifications.
    """

    def __init__(self, locator: BinaryLocator | None = None, platform: str | None = None):
        """
        Args:
            locator: Returns the oha binary path or None (defaults to ./bin, then PATH)
            platform: sys.platform style name selecting the quoting convention
        """
        self.locator = locator or default_locator()
        self.platform = platform or sys.platform

    def build(self, spec: TestSpecification) -> str:
        """
        Build the command string for a specification.

        Raises:
            OhaDriverError: INVALID_SPECIFICATION, SECURITY_REJECTED or
                BINARY_NOT_FOUND
        """
        spec.validate()
        self.check_security(spec)

        binary = self.locator()
        if not binary:
            raise OhaDriverError(binary_not_found())

        quote = self.quote
        command = [
            quote(binary),
            "-c", str(spec.concurrency),
            "-z", f"{spec.duration}s",
            "-t", f"{spec.timeout}s",
            "-m", spec.method,
            "--no-tui",
        ]

        for name, value in spec.headers.items():
            command.extend(["-H", quote(f"{name}: {value}")])

        if spec.sends_body:
            command.extend(["-d", quote(spec.body)])

        # Target URL must be last
        command.append(quote(spec.url))

        result = " ".join(command)
        logger.debug(f"Built command: {result}")
        return result

    def quote(self, arg: str) -> str:
        return quote_argument(arg, self.platform)

    def check_security(self, spec: TestSpecification):
        """
        Reject values that could escape single-argument quoting.

        Raises:
            OhaDriverError: SECURITY_REJECTED
        """
        problem = find_unsafe(spec.url, _URL_METACHARACTERS)
        if problem:
            raise OhaDriverError.of(
                ErrorKind.SECURITY_REJECTED,
                f"URL contains potentially dangerous characters or commands ({problem})",
                "Remove shell metacharacters from the URL or percent-encode them",
                field="url",
            )

        for name, value in spec.headers.items():
            problem = find_unsafe(name, _HEADER_METACHARACTERS) or find_unsafe(value, _HEADER_METACHARACTERS)
            if problem:
                raise OhaDriverError.of(
                    ErrorKind.SECURITY_REJECTED,
                    f"Header '{name}' contains potentially dangerous characters or commands ({problem})",
                    "Remove shell metacharacters from header names and values",
                    field="headers",
                    header=name,
                )

        # The body is data, so metacharacters are only worth a warning
        if spec.sends_body and _BODY_METACHARACTERS.search(spec.body):
            logger.warning("Request body contains shell metacharacters")
