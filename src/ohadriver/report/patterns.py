"""
Extraction strategies for report fields.

Each report field has an ordered tuple of extractors. An extractor looks
for one textual form of the field and returns its value or None; the
first extractor that finds something wins.

Examples:
    "Requests/sec:   299.01"        -> 299.01
    "Success rate: 95.50%"          -> 95.5
    "  [200] 950 responses"         -> status 200, 950 responses
    "  [3] aborted due to deadline" -> 3 errors (error distribution)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")

NUMBER = r"(\d+(?:\.\d+)?)"
INTEGER = r"(\d+)"

_FLAGS = re.IGNORECASE | re.MULTILINE


@dataclass(frozen=True)
class PatternExtractor(Generic[T]):
    """First match of ``pattern``; group 1 converted by ``convert``."""
    name: str
    pattern: re.Pattern
    convert: Callable[[str], T] = float

    @classmethod
    def of(cls, name: str, pattern: str, convert: Callable[[str], T] = float) -> "PatternExtractor[T]":
        return cls(name=name, pattern=re.compile(pattern, _FLAGS), convert=convert)

    def extract(self, text: str) -> T | None:
        match = self.pattern.search(text)
        if match is None:
            return None
        try:
            return self.convert(match.group(1))
        except ValueError:
            return None

    def __repr__(self):
        return f"PatternExtractor({self.name!r})"


def first_match(extractors: Iterable[PatternExtractor[T]], text: str) -> T | None:
    """Value of the first extractor that finds something."""
    for extractor in extractors:
        value = extractor.extract(text)
        if value is not None:
            return value
    return None


# ============================================================================
# Primary labels
# ============================================================================

REQUESTS_PER_SECOND: tuple[PatternExtractor[float], ...] = (
    PatternExtractor.of("requests/sec", rf"requests\s*/\s*sec(?:ond)?\s*:\s*{NUMBER}"),
    PatternExtractor.of("requests per second", rf"requests\s+per\s+second\s*:?\s*{NUMBER}"),
)

SUCCESS_RATE: tuple[PatternExtractor[float], ...] = (
    PatternExtractor.of("success rate", rf"success\s+rate\s*:?\s*{NUMBER}\s*%"),
)

# Used only when there is no status code distribution
TOTAL_REQUESTS: tuple[PatternExtractor[int], ...] = (
    PatternExtractor.of("total", rf"\btotal\s*:\s*{INTEGER}\s+requests?\b(?!\s*/)", int),
    PatternExtractor.of("bare requests", rf"(?<![\d.])\b{INTEGER}\s+requests?\b(?!\s*/)", int),
)

# ============================================================================
# Looser synonyms, tried after the primary labels
# ============================================================================

REQUESTS_PER_SECOND_FALLBACK: tuple[PatternExtractor[float], ...] = (
    PatternExtractor.of("reqs/sec", rf"reqs\s*/\s*sec\s*:?\s*{NUMBER}"),
    PatternExtractor.of("rps", rf"\bRPS\s*:\s*{NUMBER}"),
    PatternExtractor.of("req/s", rf"\breq\s*/\s*s\s*:\s*{NUMBER}"),
    PatternExtractor.of("n requests/sec", rf"{NUMBER}\s*requests?\s*/\s*sec"),
)

SUCCESS_RATE_FALLBACK: tuple[PatternExtractor[float], ...] = (
    PatternExtractor.of("success", rf"\bsuccess\s*:\s*{NUMBER}\s*%"),
    PatternExtractor.of("n% success", rf"{NUMBER}\s*%\s*success"),
)

TOTAL_REQUESTS_FALLBACK: tuple[PatternExtractor[int], ...] = (
    PatternExtractor.of("completed", rf"\bcompleted\s*:?\s*{INTEGER}\s*requests?\b(?!\s*/)", int),
    PatternExtractor.of("n total requests", rf"(?<![\d.])\b{INTEGER}\s*total\s+requests?\b", int),
    PatternExtractor.of("n requests completed", rf"(?<![\d.])\b{INTEGER}\s*requests?\s+completed\b", int),
)

FAILED_REQUESTS_FALLBACK: tuple[PatternExtractor[int], ...] = (
    PatternExtractor.of("failed", rf"\bfailed\s*:\s*{INTEGER}\b", int),
    PatternExtractor.of("error", rf"\berrors?\s*:\s*{INTEGER}\b", int),
    PatternExtractor.of("timeout", rf"\btimeouts?\s*:\s*{INTEGER}\b", int),
)

# ============================================================================
# Distribution sections
# ============================================================================

STATUS_LINE = re.compile(r"\[(\d{3})\]\s+(\d+)\s+responses?\b", re.IGNORECASE)

ERROR_HEADING = re.compile(r"^[ \t]*error[ \t]+distribution[ \t]*:?[ \t]*\r?$", _FLAGS)
ERROR_LINE = re.compile(r"^\s*\[(\d+)\]\s+(\S.*?)\s*$")

# Codes at or above this count as failed responses
FAILED_STATUS = 400


def status_distribution(text: str) -> dict[int, int]:
    """Responses per HTTP status code ({} when there is no such section)."""
    counts: dict[int, int] = {}
    for code, count in STATUS_LINE.findall(text):
        counts[int(code)] = counts.get(int(code), 0) + int(count)
    return counts


def error_distribution(text: str) -> list[tuple[int, str]]:
    """
    (count, description) pairs of the error distribution section.

    Only lines between the "Error distribution" heading and the next
    blank line are considered.
    """
    heading = ERROR_HEADING.search(text)
    if heading is None:
        return []

    entries = []
    # Skip the remainder of the heading line itself
    for line in text[heading.end():].splitlines()[1:]:
        if not line.strip():
            break
        match = ERROR_LINE.match(line)
        if match:
            entries.append((int(match.group(1)), match.group(2)))
    return entries


# ============================================================================
# Detailed statistics
# ============================================================================

TIME_UNIT = r"(seconds|secs|sec|ms|us|µs|s)\b"

_TO_MS = {
    "seconds": 1000.0,
    "secs": 1000.0,
    "sec": 1000.0,
    "s": 1000.0,
    "ms": 1.0,
    "us": 0.001,
    "µs": 0.001,
}

SIZE_UNIT = r"(GiB|GB|MiB|MB|KiB|KB|B)"

_TO_KB = {
    "B": 1 / 1024,
    "KB": 1.0,
    "KIB": 1.0,
    "MB": 1024.0,
    "MIB": 1024.0,
    "GB": 1024.0 * 1024,
    "GIB": 1024.0 * 1024,
}


def to_milliseconds(value: float, unit: str) -> float:
    return value * _TO_MS[unit.lower()]


def to_kilobytes(value: float, unit: str) -> float:
    return value * _TO_KB[unit.upper()]


@dataclass(frozen=True)
class LatencyExtractor:
    """A labelled latency with a time unit, normalised to milliseconds."""
    name: str
    pattern: re.Pattern

    @classmethod
    def of(cls, name: str, label: str) -> "LatencyExtractor":
        return cls(name=name, pattern=re.compile(rf"{label}\s*{NUMBER}\s*{TIME_UNIT}", _FLAGS))

    def extract(self, text: str) -> float | None:
        match = self.pattern.search(text)
        if match is None:
            return None
        return to_milliseconds(float(match.group(1)), match.group(2))


def _percentile(p: int) -> tuple[LatencyExtractor, ...]:
    # "50%: 10.5 ms" and oha's "50.00% in 0.0012 secs"
    return (LatencyExtractor.of(f"p{p}", rf"^\s*{p}(?:\.0+)?\s*%\s*(?::|in)"),)


PERCENTILES: dict[str, tuple[LatencyExtractor, ...]] = {
    "p50_ms": _percentile(50),
    "p90_ms": _percentile(90),
    "p95_ms": _percentile(95),
    "p99_ms": _percentile(99),
}

LATENCIES: dict[str, tuple[LatencyExtractor, ...]] = {
    "average_ms": (LatencyExtractor.of("average", r"\baverage\s*:"),),
    "min_ms": (
        LatencyExtractor.of("min", r"\bmin\s*:"),
        LatencyExtractor.of("fastest", r"\bfastest\s*:"),
    ),
    "max_ms": (
        LatencyExtractor.of("max", r"\bmax\s*:"),
        LatencyExtractor.of("slowest", r"\bslowest\s*:"),
    ),
}

TRANSFER_RATE = (
    re.compile(rf"transfer\s+rate\s*:\s*({NUMBER}\s*{SIZE_UNIT}(?:\s*/\s*s(?:ec)?)?)", _FLAGS),
    re.compile(rf"size\s*/\s*sec\s*:\s*({NUMBER}\s*{SIZE_UNIT})", _FLAGS),
    re.compile(rf"({NUMBER}\s*{SIZE_UNIT}\s*/\s*s(?:ec)?)\b", _FLAGS),
)

DATA_TRANSFERRED = (
    re.compile(rf"data\s+transferred\s*:\s*({NUMBER}\s*{SIZE_UNIT})", _FLAGS),
    re.compile(rf"total\s+data\s*:\s*({NUMBER}\s*{SIZE_UNIT})", _FLAGS),
)


def transfer_rate(text: str) -> tuple[str, float] | None:
    """(raw label, KB/s) of the first transfer rate found."""
    for pattern in TRANSFER_RATE:
        match = pattern.search(text)
        if match:
            raw, value, unit = match.group(1), match.group(2), match.group(3)
            return raw.strip(), to_kilobytes(float(value), unit)
    return None


def data_transferred(text: str) -> str | None:
    for pattern in DATA_TRANSFERRED:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


# ============================================================================
# Report hallmarks and error counters
# ============================================================================

HALLMARKS = tuple(
    re.compile(p, _FLAGS)
    for p in (
        r"^\s*oha\s+v?\d",                  # version banner
        r"requests\s*/\s*sec\s*:?\s*\d",
        r"reqs\s*/\s*sec\s+\d",
        r"success\s+rate\s*:?\s*\d",
        r"^\s*summary\s*:",
        r"status\s+code\s+distribution",
    )
)

ERROR_COUNTERS: dict[str, PatternExtractor[int]] = {
    "connection": PatternExtractor.of("connection errors", rf"connection\s+errors\s*:\s*{INTEGER}", int),
    "timeout": PatternExtractor.of("timeout errors", rf"timeout\s+errors\s*:\s*{INTEGER}", int),
    "read": PatternExtractor.of("read errors", rf"read\s+errors\s*:\s*{INTEGER}", int),
    "write": PatternExtractor.of("write errors", rf"write\s+errors\s*:\s*{INTEGER}", int),
}

ERROR_MESSAGES = (
    re.compile(r"^\s*error\s*:\s*(.+?)\s*$", _FLAGS),
    re.compile(r"^\s*failed to [^:]*:\s*(.+?)\s*$", _FLAGS),
    re.compile(r"^\s*[^:\n]*\bfailed\s*:\s*(.+?)\s*$", _FLAGS),
    re.compile(r"^\s*[^:\n]*\berror\s*:\s*(.+?)\s*$", _FLAGS),
)
