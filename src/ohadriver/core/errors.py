"""
Error kinds and error records.

Every failure this package can report is described by an ErrorRecord
whose kind is one member of the closed ErrorKind enumeration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ErrorKind(Enum):
    """Classification of a failed (or, for SUCCESS, a clean) execution."""
    SUCCESS = "success"                     # Exit code 0, not an error
    BINARY_NOT_FOUND = "binary_not_found"
    BINARY_NOT_EXECUTABLE = "binary_not_executable"
    PROCESS_START_FAILED = "process_start_failed"
    PROCESS_TIMEOUT = "process_timeout"
    PROCESS_CRASHED = "process_crashed"
    INTERRUPTED = "interrupted"             # Stopped by the user (SIGINT)
    INVALID_ARGUMENTS = "invalid_arguments"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"
    DNS_ERROR = "dns_error"
    TLS_ERROR = "tls_error"
    ALREADY_RUNNING = "already_running"
    INVALID_SPECIFICATION = "invalid_specification"
    SECURITY_REJECTED = "security_rejected"
    UNKNOWN = "unknown"


def _freeze(details: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(details or {}))


@dataclass(frozen=True)
class ErrorRecord:
    """
    A displayable description of one failure.

    Records are created once and never mutated; ``details`` is exposed
    as a read-only mapping (exit code, output excerpt, command, ...).
    """
    kind: ErrorKind
    message: str
    suggestion: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "details", _freeze(self.details))

    @property
    def is_error(self) -> bool:
        return self.kind is not ErrorKind.SUCCESS

    def display(self) -> str:
        """Message plus suggestion, ready to show to an operator."""
        text = self.message or "An unknown error occurred"
        if self.suggestion:
            text += f"\n\nSuggestion: {self.suggestion}"
        return text

    def with_details(self, **extra: Any) -> "ErrorRecord":
        """Return a copy with additional detail entries."""
        return ErrorRecord(
            kind=self.kind,
            message=self.message,
            suggestion=self.suggestion,
            details={**self.details, **extra},
        )


class OhaDriverError(Exception):
    """Raised for failures that must reach the immediate caller."""

    def __init__(self, record: ErrorRecord):
        super().__init__(record.message)
        self.record = record

    @property
    def kind(self) -> ErrorKind:
        return self.record.kind

    @classmethod
    def of(cls, kind: ErrorKind, message: str, suggestion: str = "", **details) -> "OhaDriverError":
        return cls(ErrorRecord(kind=kind, message=message, suggestion=suggestion, details=details))
