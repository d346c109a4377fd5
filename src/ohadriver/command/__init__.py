"""
Command line assembly for the oha binary.
"""

from ohadriver.command.builder import (
    CommandBuilder,
    quote_argument,
)
from ohadriver.command.locator import (
    BinaryLocator,
    default_locator,
    fixed_locator,
    binary_name,
)

__all__ = [
    "CommandBuilder",
    "quote_argument",
    "BinaryLocator",
    "default_locator",
    "fixed_locator",
    "binary_name",
]
