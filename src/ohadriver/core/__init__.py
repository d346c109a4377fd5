"""
Core value types: test specifications and error records.
"""

from ohadriver.core.errors import (
    ErrorKind,
    ErrorRecord,
    OhaDriverError,
)
from ohadriver.core.specification import (
    TestSpecification,
    VALID_METHODS,
    METHODS_WITH_BODY,
)

__all__ = [
    # errors
    "ErrorKind",
    "ErrorRecord",
    "OhaDriverError",
    # specification
    "TestSpecification",
    "VALID_METHODS",
    "METHODS_WITH_BODY",
]
