"""
Parsing of oha reports into structured metrics.
"""

from ohadriver.report.models import (
    ParsedMetrics,
    DetailedStats,
    ErrorCounts,
)
from ohadriver.report.parser import ReportParser
from ohadriver.report.patterns import (
    PatternExtractor,
    LatencyExtractor,
    first_match,
)

__all__ = [
    "ParsedMetrics",
    "DetailedStats",
    "ErrorCounts",
    "ReportParser",
    "PatternExtractor",
    "LatencyExtractor",
    "first_match",
]
