"""
Cross-cutting helpers for the offline sync engine (currently just logging).
"""

from offline_sync.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
