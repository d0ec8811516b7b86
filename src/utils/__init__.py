"""Utility modules for keyword research."""

from .config import Settings, get_settings
from .rate_limit import RateLimiter

__all__ = [
    "Settings",
    "get_settings",
    "RateLimiter",
]
