"""
Client Opportunistic Refresher

Refreshes stale avatars from a page-view context:
- At most once per session (explicit RefreshSession state)
- At most once per cooldown window (lastCheck in session metadata)
- Deferred so it never competes with initial rendering
- Strictly sequential, one fetch/save round-trip at a time

Fetched blobs are pushed to the server through the save endpoint.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import httpx

from .errors import AvatarCacheError, FetchTimeoutError, HttpError, NetworkError
from .fetcher import AvatarFetcher
from .metadata_store import SessionMetadataStore
from .models import avatar_filename, now_ms
from .staleness import CLIENT_COOLDOWN_MS, DEFAULT_TTL_MS, is_stale

logger = logging.getLogger(__name__)

DEFAULT_SAVE_URL = "/api/save-avatar"


@dataclass
class RefreshSession:
    """State of one page context; a fresh instance means a fresh session."""
    checked: bool = False
    task: Optional[asyncio.Task] = None


class SaveEndpointClient:
    """Posts fetched avatars to the save endpoint as multipart form data."""

    def __init__(
        self,
        save_url: str = DEFAULT_SAVE_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        base_url: str = "",
    ):
        self.save_url = save_url
        self._owns_client = client is None
        # base_url is the site origin; save_url is usually relative to it
        self.http_client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self):
        if self._owns_client:
            await self.http_client.aclose()

    async def save(self, key: str, data: bytes) -> None:
        files = {"avatar": (avatar_filename(key), data, "image/png")}
        try:
            response = await self.http_client.post(self.save_url, files=files, data={"githubId": key})
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"Save request timeout for {key}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Save request failed for {key}: {e}") from e

        if not response.is_success:
            raise HttpError(self.save_url, response.status_code, f"Failed to save avatar: {response.status_code}")


class ClientRefresher:
    """
    Opportunistic avatar refresh for one page context.

    Usage:
        refresher = ClientRefresher(fetcher, saver, SessionMetadataStore(local_storage))
        refresher.check_and_update(["alice", "bob"])
    """

    def __init__(
        self,
        fetcher: AvatarFetcher,
        saver: SaveEndpointClient,
        store: Optional[SessionMetadataStore],
        session: Optional[RefreshSession] = None,
        *,
        ttl_ms: int = DEFAULT_TTL_MS,
        cooldown_ms: int = CLIENT_COOLDOWN_MS,
        delay: float = 2.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.fetcher = fetcher
        self.saver = saver
        self.store = store
        self.session = session or RefreshSession()
        self.ttl_ms = ttl_ms
        self.cooldown_ms = cooldown_ms
        self.delay = delay
        self.clock = clock

    def check_and_update(self, roster: Sequence[str]) -> Optional[asyncio.Task]:
        """
        Schedule a background refresh if this session and cooldown allow it.

        Must be called with a running event loop. Returns the scheduled
        task, or None when nothing was scheduled.
        """
        if self.session.checked or self.store is None:
            return None
        self.session.checked = True

        metadata = self.store.load()
        now = self.clock()
        if metadata.last_client_check and now - metadata.last_client_check < self.cooldown_ms:
            logger.info("[ClientRefresher] Avatar check skipped - checked recently")
            return None

        # Written before any network activity so overlapping page loads back off
        metadata.last_client_check = now
        self.store.save(metadata)

        keys = list(roster)
        logger.info(f"[ClientRefresher] Checking {len(keys)} avatars for updates...")
        self.session.task = asyncio.get_running_loop().create_task(self._deferred(keys))
        return self.session.task

    async def _deferred(self, roster: Sequence[str]) -> int:
        await asyncio.sleep(self.delay)
        return await self.refresh(roster)

    async def refresh(self, roster: Sequence[str]) -> int:
        """
        Fetch and save every stale avatar, one at a time.

        Returns:
            Number of avatars updated.
        """
        if self.store is None:
            return 0

        updated = 0
        for key in roster:
            if not is_stale(self.store.get_entry(key), self.clock(), ttl=self.ttl_ms):
                continue
            if await self._update_one(key):
                updated += 1

        logger.info(f"[ClientRefresher] Avatar update complete. Updated {updated} avatars.")
        return updated

    async def _update_one(self, key: str) -> bool:
        try:
            data = await self.fetcher.fetch_bytes(key, cache_bust=self.clock())
            await self.saver.save(key, data)
        except AvatarCacheError as e:
            logger.error(f"[ClientRefresher] Error downloading avatar for {key}: {e}")
            return False

        self.store.set_entry(key, self.clock())
        return True
