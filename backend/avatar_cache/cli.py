"""
Avatar Cache CLI

Periodic batch refresh, meant to be run from cron:

    avatar-cache            # refresh avatars older than the TTL
    avatar-cache --force    # refresh every avatar

Always exits 0: a failed avatar refresh must never break the surrounding
build or deploy pipeline. Failures are logged instead.
"""

import argparse
import asyncio
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional

from .config import AvatarCacheSettings
from .errors import AvatarCacheError
from .fetcher import AvatarFetcher
from .metadata_store import FileMetadataStore
from .models import ReconcileSummary
from .reconciler import AvatarReconciler
from .roster import load_roster

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_MAX_BYTES = 1024 * 1024


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="avatar-cache",
        description="Download roster avatars into the local avatar cache.",
    )
    parser.add_argument("--force", action="store_true", help="Download all avatars even if they are recent")
    parser.add_argument("--roster", type=Path, help="JSON roster file (default: $AVATAR_ROSTER_FILE)")
    parser.add_argument("--avatar-dir", type=Path, help="Avatar directory (default: $AVATAR_DIR)")
    parser.add_argument("--host", help="Remote avatar host (default: $AVATAR_HOST)")
    parser.add_argument("--log-file", type=Path, help="Also append logs to a size-bounded rotating file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def configure_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=1)
        )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


async def run_batch(settings: AvatarCacheSettings, force: bool = False) -> Optional[ReconcileSummary]:
    """Load the roster and reconcile it. Returns None if nothing could run."""
    try:
        roster = load_roster(settings.roster_file)
    except AvatarCacheError as e:
        logger.error(f"[AvatarCLI] {e}")
        return None

    store = FileMetadataStore(settings.avatar_dir)
    async with AvatarFetcher(
        host=settings.host,
        size=settings.size,
        timeout=settings.fetch_timeout,
    ) as fetcher:
        reconciler = AvatarReconciler(store, fetcher, ttl_ms=settings.ttl_ms)
        try:
            return await reconciler.reconcile(roster, force=force)
        except AvatarCacheError as e:
            logger.error(f"[AvatarCLI] Error in avatar download process: {e}")
            return None


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    settings = AvatarCacheSettings.from_env()
    if args.roster is not None:
        settings.roster_file = args.roster
    if args.avatar_dir is not None:
        settings.avatar_dir = args.avatar_dir
    if args.host:
        settings.host = args.host

    logger.info("[AvatarCLI] ===== Avatar download started =====")
    summary = asyncio.run(run_batch(settings, force=args.force))
    if summary is not None and summary.failed:
        logger.warning(f"[AvatarCLI] {summary.failed} avatars failed: {', '.join(sorted(summary.failures))}")
    logger.info("[AvatarCLI] ===== Avatar download completed =====")
    return 0


if __name__ == "__main__":
    sys.exit(main())
