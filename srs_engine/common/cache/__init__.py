"""
In-memory caching for derived schedules.
"""

from .entry import CacheEntry
from .memory import MemoryCache

__all__ = [
    'CacheEntry',
    'MemoryCache',
]
