"""
Avatar Batch Reconciler

Brings the local avatar directory in line with a roster of keys:
every stale or missing avatar is downloaded concurrently, fresh ones are
skipped, and the metadata file is rewritten once at the end.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Sequence

from .errors import AvatarCacheError
from .fetcher import AvatarFetcher
from .metadata_store import FileMetadataStore
from .models import CacheMetadata, ReconcileSummary, now_ms
from .staleness import DEFAULT_TTL_MS, is_stale

logger = logging.getLogger(__name__)


class AvatarReconciler:
    """
    Reconciles a roster against the server-side avatar cache.

    Usage:
        reconciler = AvatarReconciler(FileMetadataStore(avatar_dir), fetcher)
        summary = await reconciler.reconcile(["alice", "bob"])
    """

    def __init__(
        self,
        store: FileMetadataStore,
        fetcher: AvatarFetcher,
        *,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.fetcher = fetcher
        self.ttl_ms = ttl_ms
        self.clock = clock
        self._lock = asyncio.Lock()

    async def reconcile(self, roster: Sequence[str], force: bool = False) -> ReconcileSummary:
        """
        Refresh every stale avatar in the roster.

        Args:
            roster: Identity keys to keep cached
            force: Download everything regardless of age

        Returns:
            ReconcileSummary with downloaded/skipped/failed counts.
        """
        keys: List[str] = list(roster)
        summary = ReconcileSummary(total=len(keys))
        metadata = self.store.load()
        self.store.ensure_dir()

        logger.info(f"[AvatarReconciler] Processing {len(keys)} avatars...")

        tasks = [self._process(key, metadata, summary, force) for key in keys]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        # _process handles expected errors itself, anything left here is unexpected
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                summary.failed += 1
                summary.failures[key] = str(result)
                logger.error(f"[AvatarReconciler] Unexpected error for {key}: {result!r}")

        metadata.last_batch_run = self.clock()
        try:
            self.store.save(metadata)
        except AvatarCacheError as e:
            logger.error(f"[AvatarReconciler] Failed to save metadata: {e}")
        else:
            next_run = datetime.fromtimestamp((metadata.last_batch_run + self.ttl_ms) / 1000)
            logger.info(f"[AvatarReconciler] Metadata updated. Next scheduled refresh: {next_run:%Y-%m-%d %H:%M}")

        logger.info(
            f"[AvatarReconciler] Summary: total={summary.total} downloaded={summary.downloaded} "
            f"skipped={summary.skipped} failed={summary.failed} (avatars in {self.store.avatar_dir})"
        )
        return summary

    async def _process(
        self,
        key: str,
        metadata: CacheMetadata,
        summary: ReconcileSummary,
        force: bool,
    ) -> None:
        path = self.store.avatar_path(key)
        stale = is_stale(
            metadata.get(key),
            self.clock(),
            force=force,
            ttl=self.ttl_ms,
            blob_present=path.exists(),
        )
        if not stale:
            async with self._lock:
                summary.skipped += 1
            logger.info(f"[AvatarReconciler] Skipped avatar for {key} - recently updated")
            return

        try:
            size = await self.fetcher.download(key, path)
        except AvatarCacheError as e:
            async with self._lock:
                summary.failed += 1
                summary.failures[key] = str(e)
            logger.error(f"[AvatarReconciler] Failed to download avatar for {key}: {e}")
            return

        async with self._lock:
            metadata.record(key, self.clock(), str(path))
            summary.downloaded += 1
            done = summary.downloaded + summary.skipped + summary.failed
        logger.info(f"[AvatarReconciler] Downloaded avatar for {key} ({size} bytes, {done}/{summary.total})")
