"""
Avatar Cache Module

Keeps a local copy of remote-hosted avatar images so the site can serve
them from its own origin instead of loading them cross-origin.

Features:
- Batch reconciler for a roster of keys (run periodically, e.g. weekly)
- Client-side opportunistic refresher with per-session and daily throttling
- Save endpoint for avatars pushed by the client refresher
- TTL-based staleness shared by both paths
"""

from .fetcher import AvatarFetcher
from .metadata_store import FileMetadataStore, SessionMetadataStore
from .reconciler import AvatarReconciler
from .refresher import ClientRefresher, RefreshSession, SaveEndpointClient
from .resolver import AvatarUrlResolver
from .staleness import is_stale

__all__ = [
    "AvatarFetcher",
    "AvatarReconciler",
    "AvatarUrlResolver",
    "ClientRefresher",
    "FileMetadataStore",
    "RefreshSession",
    "SaveEndpointClient",
    "SessionMetadataStore",
    "is_stale",
]
