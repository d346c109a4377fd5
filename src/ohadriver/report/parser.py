"""
Report parsing.

Turns the text oha prints at the end of a run into ParsedMetrics. Parsing
never fails: a metric that cannot be found keeps its zero value, so a
truncated or unexpected report still yields something to show.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from ohadriver.report import patterns
from ohadriver.report.models import DetailedStats, ErrorCounts, ParsedMetrics
from ohadriver.report.patterns import first_match

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ReportParser:
    """
    Extracts metrics from oha report text.

    Every field is looked up through its ordered extractor list, primary
    labels first and looser synonyms after; the first hit wins.
    """

    def parse(self, text: str, completed_at: datetime | None = None) -> ParsedMetrics:
        """
        Parse a report.

        Args:
            text: Accumulated report text
            completed_at: Completion time (defaults to now)

        Returns:
            ParsedMetrics, zero-valued where nothing was found
        """
        text = text or ""

        rps = first_match(patterns.REQUESTS_PER_SECOND, text)
        success_rate = first_match(patterns.SUCCESS_RATE, text)

        statuses = patterns.status_distribution(text)
        errors = patterns.error_distribution(text)

        # The status code distribution is authoritative for the total
        total = sum(statuses.values()) if statuses else None
        if not total:
            total = first_match(patterns.TOTAL_REQUESTS, text)

        failed = self._failed_from_sections(statuses, errors)
        if failed is None and total and success_rate is not None:
            failed = total - round_half_up(total * success_rate / 100.0)

        # Looser synonyms never overwrite what the primary labels found
        if rps is None:
            rps = first_match(patterns.REQUESTS_PER_SECOND_FALLBACK, text)
        if not total:
            total = first_match(patterns.TOTAL_REQUESTS_FALLBACK, text)
        if success_rate is None:
            success_rate = first_match(patterns.SUCCESS_RATE_FALLBACK, text)
        if failed is None:
            if total and success_rate is not None:
                failed = total - round_half_up(total * success_rate / 100.0)
            else:
                failed = first_match(patterns.FAILED_REQUESTS_FALLBACK, text)

        total = total or 0
        failed = failed or 0

        # Requests that failed before producing any response are still requests
        if total == 0 and errors:
            total = failed

        failed = max(0, min(failed, total))

        if success_rate is None:
            success_rate = (total - failed) / total * 100.0 if total else 0.0

        details = self.parse_detailed_stats(text)

        metrics = ParsedMetrics(
            requests_per_second=rps or 0.0,
            total_requests=total,
            failed_requests=failed,
            success_rate=min(max(success_rate, 0.0), 100.0),
            raw_output=text,
            details=None if details.is_empty else details,
            completed_at=completed_at or datetime.now(timezone.utc),
        )

        logger.debug(
            f"Parsed report: rps={metrics.requests_per_second} total={metrics.total_requests} "
            f"failed={metrics.failed_requests} success={metrics.success_rate}%"
        )
        return metrics

    def _failed_from_sections(self, statuses: dict[int, int], errors: list[tuple[int, str]]) -> int | None:
        """Failures counted in the distribution sections, None if they show none."""
        failed_responses = sum(
            count for code, count in statuses.items() if code >= patterns.FAILED_STATUS
        )
        failed = failed_responses + sum(count for count, _ in errors)
        return failed or None

    def parse_detailed_stats(self, text: str) -> DetailedStats:
        """Latency percentiles, min/average/max latency and transfer figures."""
        text = text or ""
        values = {}

        for name, extractors in {**patterns.PERCENTILES, **patterns.LATENCIES}.items():
            values[name] = first_match(extractors, text)

        rate = patterns.transfer_rate(text)
        if rate is not None:
            values["transfer_rate"], values["transfer_rate_kbps"] = rate

        values["data_transferred"] = patterns.data_transferred(text)
        return DetailedStats(**values)

    def is_valid_report(self, text: str) -> bool:
        """
        Whether text looks like a genuine oha report.

        Advisory only; parse() does not call it.
        """
        text = text or ""
        return any(pattern.search(text) for pattern in patterns.HALLMARKS)

    def is_successful_report(self, text: str) -> bool:
        """A valid report with requests recorded and no "Error:" line."""
        if not self.is_valid_report(text):
            return False
        if patterns.ERROR_MESSAGES[0].search(text):
            return False
        return self.parse(text).total_requests > 0

    def parse_error_counts(self, text: str) -> ErrorCounts:
        """Connection/timeout/read/write error counters."""
        text = text or ""
        return ErrorCounts(**{
            name: extractor.extract(text) or 0
            for name, extractor in patterns.ERROR_COUNTERS.items()
        })

    def error_distribution(self, text: str) -> dict[str, int]:
        """Error distribution section as description -> count."""
        counts: dict[str, int] = {}
        for count, description in patterns.error_distribution(text or ""):
            counts[description] = counts.get(description, 0) + count
        return counts

    def status_distribution(self, text: str) -> dict[int, int]:
        return patterns.status_distribution(text or "")

    def extract_errors(self, text: str) -> list[str]:
        """Error messages from lines like "Error: ...", "Failed to x: ...", "... failed: ..."."""
        messages = []
        for line in (text or "").splitlines():
            for pattern in patterns.ERROR_MESSAGES:
                match = pattern.match(line)
                if match:
                    messages.append(match.group(1))
                    break
        return messages
