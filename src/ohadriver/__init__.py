"""
ohadriver: drive the oha HTTP load generator and turn its reports into metrics.
"""

__version__ = "0.1.0"
