"""
Staleness Policy

Decides whether a cached avatar must be fetched again. Shared by the
batch reconciler, which also knows whether the blob is on disk, and the
client refresher, which only sees its session metadata.
"""

from typing import Optional

from .models import CacheEntry

DAY_MS = 24 * 60 * 60 * 1000

# How old an avatar can be before it is refreshed
DEFAULT_TTL_MS = 7 * DAY_MS

# Minimum spacing between two client-side checks
CLIENT_COOLDOWN_MS = DAY_MS


def is_stale(
    entry: Optional[CacheEntry],
    now: int,
    *,
    force: bool = False,
    ttl: int = DEFAULT_TTL_MS,
    blob_present: bool = True,
) -> bool:
    """
    Return True if the avatar for an entry must be refreshed.

    Args:
        entry: Metadata for the key, or None if the key is unknown
        now: Current time in epoch milliseconds
        force: Refresh regardless of age
        ttl: Maximum age in milliseconds
        blob_present: Whether the cached file exists on disk
    """
    if force:
        return True
    if entry is None or not entry.last_updated:
        return True
    if not blob_present:
        return True
    return now - entry.last_updated > ttl
