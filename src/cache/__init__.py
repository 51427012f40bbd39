"""Request-coalescing cache."""

from .coalescing import (
    CacheEntry,
    CoalescingCache,
    InFlightEntry,
    get_default_cache,
    make_key,
    reset_default_cache,
)

__all__ = [
    "CacheEntry",
    "CoalescingCache",
    "InFlightEntry",
    "get_default_cache",
    "make_key",
    "reset_default_cache",
]
