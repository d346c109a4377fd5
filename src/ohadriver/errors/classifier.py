"""
Error classification.

Maps the exit code and output of a finished oha process to an
ErrorRecord. Classification is best effort: a specific, actionable kind
is preferred over UNKNOWN whenever a pattern matches, and nothing here
raises on odd input.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass, field

from ohadriver.core.errors import ErrorKind, ErrorRecord

logger = logging.getLogger(__name__)

# Longest output excerpt kept in ErrorRecord details
MAX_EXCERPT = 4000

MAX_COMMAND_LENGTH = 8192

_ERROR_LINE = re.compile(r"error|failed|exception|panic", re.IGNORECASE)


def installation_instructions(platform: str | None = None) -> str:
    """Platform specific guidance for installing oha."""
    platform = platform or sys.platform

    if platform.startswith("win"):
        return (
            "To install oha on Windows:\n"
            "1. Download from: https://github.com/hatoo/oha/releases\n"
            "2. Extract oha.exe to a folder in your PATH\n"
            "3. Or install via Cargo: cargo install oha\n"
            "4. Or install via Scoop: scoop install oha"
        )
    if platform == "darwin":
        return (
            "To install oha on macOS:\n"
            "1. Install via Homebrew: brew install oha\n"
            "2. Or install via Cargo: cargo install oha\n"
            "3. Or download from: https://github.com/hatoo/oha/releases"
        )
    if platform.startswith("linux"):
        return (
            "To install oha on Linux:\n"
            "1. Install via Cargo: cargo install oha\n"
            "2. Or download from: https://github.com/hatoo/oha/releases\n"
            "3. Or install via package manager (if available)\n"
            "4. Make sure ~/.cargo/bin is in your PATH"
        )
    return (
        "To install oha:\n"
        "1. Install Rust and Cargo\n"
        "2. Run: cargo install oha\n"
        "3. Or download from: https://github.com/hatoo/oha/releases"
    )


def executable_permission_suggestion(path: str, platform: str | None = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return (
            "Check if the file is blocked by Windows security. Right-click the file, "
            "go to Properties, and unblock it if necessary."
        )
    return f"Run: chmod +x {path}"


def binary_not_found(path: str | None = None) -> ErrorRecord:
    where = f" at {path}" if path else " in PATH or the configured location"
    return ErrorRecord(
        kind=ErrorKind.BINARY_NOT_FOUND,
        message=f"oha binary not found{where}",
        suggestion=installation_instructions(),
        details={"path": path} if path else {},
    )


def process_timeout(timeout_seconds: float, command: str) -> ErrorRecord:
    return ErrorRecord(
        kind=ErrorKind.PROCESS_TIMEOUT,
        message=f"Process timed out after {timeout_seconds:g} seconds",
        suggestion="Consider increasing timeout or reducing test duration",
        details={"timeout_seconds": timeout_seconds, "command": command},
    )


@dataclass(frozen=True)
class TextRule:
    """Substrings (lower case) that identify one failure kind in output."""
    kind: ErrorKind
    needles: tuple[str, ...]
    message: str
    suggestion: str

    def matches(self, lowered: str) -> bool:
        return any(needle in lowered for needle in self.needles)


# Checked in order; the first matching rule wins.
DEFAULT_TEXT_RULES: tuple[TextRule, ...] = (
    TextRule(
        kind=ErrorKind.NETWORK_ERROR,
        needles=(
            "connection refused",
            "connection timed out",
            "connection timeout",
            "connection reset",
            "no route to host",
            "network is unreachable",
            "host unreachable",
        ),
        message="Network connection failed",
        suggestion="Check if the target server is running and accessible",
    ),
    TextRule(
        kind=ErrorKind.DNS_ERROR,
        needles=(
            "name resolution failed",
            "could not resolve host",
            "failed to lookup address",
            "name or service not known",
            "dns error",
            "dns resolution failed",
            "nodename nor servname",
        ),
        message="DNS resolution failed",
        suggestion="Check the URL hostname and your internet connection",
    ),
    TextRule(
        kind=ErrorKind.TLS_ERROR,
        needles=(
            "certificate",
            "ssl error",
            "ssl handshake",
            "ssl routines",
            "tls error",
            "tls handshake",
            "tlsv1 alert",
            "handshake failure",
        ),
        message="SSL/TLS connection error",
        suggestion="Check if the HTTPS certificate is valid or try HTTP instead",
    ),
    TextRule(
        kind=ErrorKind.PERMISSION_DENIED,
        needles=("permission denied", "access denied", "operation not permitted"),
        message="Permission denied",
        suggestion="Check file permissions or run with appropriate privileges",
    ),
)


@dataclass
class ErrorClassifier:
    """
    Turns (exit code, output, command) into an ErrorRecord.

    Known exit codes map directly to a kind. Anything else falls through
    to text analysis of the output.
    """

    # Ordered output rules for unrecognised exit codes
    text_rules: tuple[TextRule, ...] = DEFAULT_TEXT_RULES

    # Binary name used in messages and hints
    binary_name: str = "oha"

    _exit_codes: dict = field(init=False, repr=False)

    def __post_init__(self):
        name = self.binary_name
        self._exit_codes = {
            2: (
                ErrorKind.INVALID_ARGUMENTS,
                "Invalid command arguments",
                "Check the URL and parameters for correctness",
            ),
            126: (
                ErrorKind.BINARY_NOT_EXECUTABLE,
                f"{name} binary is not executable",
                executable_permission_suggestion(name),
            ),
            127: (
                ErrorKind.BINARY_NOT_FOUND,
                f"{name} binary not found",
                installation_instructions(),
            ),
            130: (
                ErrorKind.INTERRUPTED,
                "Process was interrupted (Ctrl+C)",
                "Test was stopped by user",
            ),
            137: (
                ErrorKind.PROCESS_CRASHED,
                "Process was killed (out of memory or timeout)",
                "Reduce concurrent connections or test duration",
            ),
        }

    def classify(self, exit_code: int, output: str = "", command: str = "") -> ErrorRecord:
        """
        Classify a finished process.

        Args:
            exit_code: Process exit code (negative for death by signal)
            output: Accumulated stdout/stderr text
            command: The command that was run

        Returns:
            ErrorRecord; kind SUCCESS for exit code 0
        """
        output = output or ""
        details = {
            "exit_code": exit_code,
            "output": _excerpt(output),
            "command": command,
        }

        if exit_code == 0:
            return ErrorRecord(
                kind=ErrorKind.SUCCESS,
                message="Process completed successfully",
                details=details,
            )

        known = self._exit_codes.get(exit_code)
        if known is not None:
            kind, message, suggestion = known
            record = ErrorRecord(kind=kind, message=message, suggestion=suggestion, details=details)
        elif exit_code < 0:
            record = self._classify_signal(-exit_code, output, details)
        else:
            record = self._classify_text(output, details)

        logger.debug(f"Classified exit code {exit_code} as {record.kind.value}")
        return record

    def _classify_signal(self, signum: int, output: str, details: dict) -> ErrorRecord:
        # Negative return codes mean the process died from a signal
        if signum == 2:
            kind, message, suggestion = self._exit_codes[130]
            return ErrorRecord(kind=kind, message=message, suggestion=suggestion, details=details)

        # Output may still explain what happened before the crash
        record = self._classify_text(output, details)
        if record.kind is not ErrorKind.UNKNOWN:
            return record

        return ErrorRecord(
            kind=ErrorKind.PROCESS_CRASHED,
            message=f"Process was terminated by signal {signum}",
            suggestion="Reduce concurrent connections or test duration",
            details={**details, "signal": signum},
        )

    def _classify_text(self, output: str, details: dict) -> ErrorRecord:
        lowered = output.lower()

        for rule in self.text_rules:
            if rule.matches(lowered):
                return ErrorRecord(
                    kind=rule.kind,
                    message=rule.message,
                    suggestion=rule.suggestion,
                    details=details,
                )

        error_lines = error_lines_of(output)
        if error_lines:
            return ErrorRecord(
                kind=ErrorKind.UNKNOWN,
                message="Process failed with errors",
                suggestion="Check the error details below",
                details={**details, "error_lines": "\n".join(error_lines)},
            )

        return ErrorRecord(
            kind=ErrorKind.UNKNOWN,
            message="Process failed with unknown error",
            suggestion="Check the full output for more information",
            details=details,
        )

    def validate_command(self, command: str) -> ErrorRecord | None:
        """
        Pre-flight check of a command string.

        Returns:
            INVALID_ARGUMENTS record, or None if the command can be run
        """
        problems = []
        if not command or not command.strip():
            problems.append("Command cannot be empty")
        elif len(command) > MAX_COMMAND_LENGTH:
            problems.append(f"Command is too long (maximum {MAX_COMMAND_LENGTH} characters)")

        if not problems:
            return None

        return ErrorRecord(
            kind=ErrorKind.INVALID_ARGUMENTS,
            message=f"Invalid command: {', '.join(problems)}",
            suggestion="Check the command parameters and try again",
            details={"command": command},
        )


def error_lines_of(output: str) -> list[str]:
    """Non-empty lines mentioning error/failed/exception/panic."""
    lines = []
    for line in output.splitlines():
        line = line.strip()
        if line and _ERROR_LINE.search(line):
            lines.append(line)
    return lines


def _excerpt(output: str) -> str:
    if len(output) <= MAX_EXCERPT:
        return output
    return output[-MAX_EXCERPT:]
