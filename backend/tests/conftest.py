"""
Avatar cache test fixtures.

Remote hosts are replaced with httpx.MockTransport handlers, so no test
touches the network.
"""

import sys
from pathlib import Path
from typing import Callable, Dict

import httpx
import pytest

# Make the backend packages importable without installing
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from avatar_cache.fetcher import AvatarFetcher
from avatar_cache.metadata_store import FileMetadataStore


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"avatar-bytes" * 8

# 2025-01-01T00:00:00Z in epoch milliseconds
FIXED_NOW = 1_735_689_600_000
HOUR_MS = 60 * 60 * 1000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = FIXED_NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def avatar_dir(tmp_path):
    return tmp_path / "avatars"


@pytest.fixture
def file_store(avatar_dir):
    return FileMetadataStore(avatar_dir)


@pytest.fixture
def local_storage() -> Dict[str, str]:
    """Stand-in for browser localStorage."""
    return {}


@pytest.fixture
def make_fetcher():
    """
    Build an AvatarFetcher whose HTTP client is served by a handler.

    Usage:
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"..."))
    """
    def factory(handler: Callable, timeout: float = 10.0) -> AvatarFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=False)
        return AvatarFetcher(host="avatars.test", timeout=timeout, client=client)

    return factory


def avatar_handler(request: httpx.Request) -> httpx.Response:
    """Every avatar request succeeds with PNG_BYTES."""
    return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})


def key_from_request(request: httpx.Request) -> str:
    return request.url.path.lstrip("/").rsplit(".png", 1)[0]
