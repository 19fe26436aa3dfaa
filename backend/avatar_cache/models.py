"""
Avatar Cache Data Model

Cache entries and metadata shared by the batch reconciler (server file)
and the client refresher (session storage). Both persist the same logical
schema; only the name of the run timestamp differs:

    server file:  {"lastRun": 0,   "avatars": {key: {"lastUpdated": 0, "path": "..."}}}
    session:      {"lastCheck": 0, "avatars": {key: {"lastUpdated": 0, "path": "..."}}}

Timestamps are integer milliseconds since the epoch.
"""

import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import MetadataError

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def avatar_filename(key: str) -> str:
    """File name of the cached blob for a key."""
    return f"{key}.png"


def is_valid_key(key: Any) -> bool:
    """Check that a key is safe to use as a file name."""
    return isinstance(key, str) and bool(_KEY_PATTERN.match(key)) and ".." not in key


@dataclass
class CacheEntry:
    """Metadata for one cached avatar."""
    key: str
    last_updated: int
    location: str

    def to_dict(self) -> Dict[str, Any]:
        return {"lastUpdated": self.last_updated, "path": self.location}


@dataclass
class CacheMetadata:
    """
    In-memory view of the cache metadata.

    last_batch_run is only meaningful for the server file and
    last_client_check only for session storage.
    """
    entries: Dict[str, CacheEntry] = field(default_factory=dict)
    last_batch_run: int = 0
    last_client_check: int = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        return self.entries.get(key)

    def record(self, key: str, timestamp: int, location: str) -> CacheEntry:
        """
        Store a refresh for a key.

        lastUpdated never moves backwards, even if an older write
        completes after a newer one.
        """
        previous = self.entries.get(key)
        if previous is not None:
            timestamp = max(previous.last_updated, timestamp)
        entry = CacheEntry(key=key, last_updated=timestamp, location=location)
        self.entries[key] = entry
        return entry

    def to_file_dict(self) -> Dict[str, Any]:
        return {
            "lastRun": self.last_batch_run,
            "avatars": {k: v.to_dict() for k, v in self.entries.items()},
        }

    def to_session_dict(self) -> Dict[str, Any]:
        return {
            "lastCheck": self.last_client_check,
            "avatars": {k: v.to_dict() for k, v in self.entries.items()},
        }

    @classmethod
    def from_file_dict(cls, data: Any) -> "CacheMetadata":
        entries = _parse_entries(data)
        return cls(
            entries=entries,
            last_batch_run=_parse_timestamp(data.get("lastRun", 0), "lastRun"),
        )

    @classmethod
    def from_session_dict(cls, data: Any) -> "CacheMetadata":
        entries = _parse_entries(data)
        return cls(
            entries=entries,
            last_client_check=_parse_timestamp(data.get("lastCheck", 0), "lastCheck"),
        )


def _parse_timestamp(value: Any, name: str) -> int:
    # bool is an int subclass but never a valid timestamp
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MetadataError(f"Invalid {name}: {value!r}")
    # json accepts NaN and 1e400, neither converts to int
    if isinstance(value, float) and not math.isfinite(value):
        raise MetadataError(f"Invalid {name}: {value!r}")
    return int(value)


def _parse_entries(data: Any) -> Dict[str, CacheEntry]:
    if not isinstance(data, dict):
        raise MetadataError(f"Metadata must be an object, got {type(data).__name__}")

    avatars = data.get("avatars", {})
    if not isinstance(avatars, dict):
        raise MetadataError("Metadata 'avatars' must be an object")

    entries: Dict[str, CacheEntry] = {}
    for key, raw in avatars.items():
        if not isinstance(raw, dict):
            raise MetadataError(f"Invalid entry for {key!r}")
        entries[key] = CacheEntry(
            key=key,
            last_updated=_parse_timestamp(raw.get("lastUpdated"), f"{key}.lastUpdated"),
            location=str(raw.get("path") or avatar_filename(key)),
        )
    return entries


@dataclass
class ReconcileSummary:
    """Counts produced by one batch reconciliation."""
    total: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "failed": self.failed,
        }
