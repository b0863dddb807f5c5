"""Shared helpers for the Google Maps leads client."""

from .logging import get_logger, setup_logging
from .quota import QuotaLimitError, QuotaTracker
from .storage import JsonFileStorage, LocalStorage, MemoryStorage

__all__ = [
    "get_logger",
    "setup_logging",
    "JsonFileStorage",
    "LocalStorage",
    "MemoryStorage",
    "QuotaLimitError",
    "QuotaTracker",
]
