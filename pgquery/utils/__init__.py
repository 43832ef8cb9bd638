"""
Utilities package for pgquery.

Exports shared logging helpers. Keep this package lightweight and free of
domain-specific logic.
"""

from pgquery.utils.logging import JsonFormatter, configure_logging, get_logger

__all__ = [
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
