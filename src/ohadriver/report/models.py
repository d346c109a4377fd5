"""
Structured results extracted from an oha report.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DetailedStats:
    """
    Optional latency and transfer statistics.

    Latencies are in milliseconds, transfer rate in KB/s. A field is None
    when the report does not mention it.
    """
    p50_ms: float | None = None
    p90_ms: float | None = None
    p95_ms: float | None = None
    p99_ms: float | None = None
    average_ms: float | None = None
    min_ms: float | None = None
    max_ms: float | None = None
    transfer_rate_kbps: float | None = None
    transfer_rate: str | None = None       # As printed, e.g. "125.3 KB/sec"
    data_transferred: str | None = None    # As printed, e.g. "2.5 MB"

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def as_dict(self) -> dict:
        """Only the fields that were found."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ErrorCounts:
    """Per-category error counters some report formats print."""
    connection: int = 0
    timeout: int = 0
    read: int = 0
    write: int = 0

    @property
    def total(self) -> int:
        return self.connection + self.timeout + self.read + self.write


@dataclass(frozen=True)
class ParsedMetrics:
    """
    Key performance metrics of one run.

    ``completed_at`` does not take part in comparisons, so parsing the
    same report twice yields equal values.
    """
    requests_per_second: float = 0.0
    total_requests: int = 0
    failed_requests: int = 0
    success_rate: float = 0.0
    raw_output: str = field(default="", repr=False)
    completed_at: datetime = field(default_factory=_now, compare=False)
    details: DetailedStats | None = None

    def __post_init__(self):
        if self.requests_per_second < 0:
            raise ValueError("requests_per_second must be >= 0")
        if self.total_requests < 0 or self.failed_requests < 0:
            raise ValueError("request counts must be >= 0")
        if self.failed_requests > self.total_requests:
            raise ValueError("failed_requests cannot exceed total_requests")
        if not 0.0 <= self.success_rate <= 100.0:
            raise ValueError("success_rate must be between 0 and 100")

    @property
    def successful_requests(self) -> int:
        return self.total_requests - self.failed_requests

    @property
    def is_empty(self) -> bool:
        return (
            self.requests_per_second == 0.0
            and self.total_requests == 0
            and self.failed_requests == 0
            and self.success_rate == 0.0
        )

    def summary(self) -> dict:
        """Plain values for the presentation layer."""
        data = {
            "requests_per_second": self.requests_per_second,
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "success_rate": self.success_rate,
            "completed_at": self.completed_at.isoformat(),
        }
        if self.details is not None:
            data["details"] = self.details.as_dict()
        return data
