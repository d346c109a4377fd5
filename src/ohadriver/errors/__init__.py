"""
Classification of failed load test runs.
"""

from ohadriver.errors.classifier import (
    ErrorClassifier,
    TextRule,
    DEFAULT_TEXT_RULES,
    binary_not_found,
    process_timeout,
    installation_instructions,
    executable_permission_suggestion,
    error_lines_of,
)

__all__ = [
    "ErrorClassifier",
    "TextRule",
    "DEFAULT_TEXT_RULES",
    "binary_not_found",
    "process_timeout",
    "installation_instructions",
    "executable_permission_suggestion",
    "error_lines_of",
]
