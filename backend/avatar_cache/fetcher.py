"""
Avatar Fetcher

Downloads avatar images from the remote host.

Handles:
- Building the avatar URL for a key
- Following 301/302 redirects (GitHub redirects to its avatar CDN)
- Bounding the whole request chain by a single timeout
- Streaming the body to disk without leaving partial files behind
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar, Union
from urllib.parse import urljoin

import httpx

from .errors import (
    FetchTimeoutError,
    HttpError,
    NetworkError,
    RedirectError,
    StorageError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

REDIRECT_STATUSES = (301, 302)


class AvatarFetcher:
    """
    Fetches avatars for identity keys.

    Usage:
        async with AvatarFetcher() as fetcher:
            await fetcher.download("octocat", Path("avatars/octocat.png"))
    """

    def __init__(
        self,
        host: str = "github.com",
        size: int = 128,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.host = host
        self.size = size
        self.timeout = timeout

        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            headers={"Accept": "image/*,*/*;q=0.8"},
        )

    async def close(self):
        """Close HTTP client."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "AvatarFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def avatar_url(self, key: str) -> str:
        return f"https://{self.host}/{key}.png?size={self.size}"

    async def download(self, key: str, destination: Union[str, Path]) -> int:
        """
        Download the avatar for a key into destination.

        The body is streamed to a temp file in the destination directory
        and renamed into place once complete.

        Returns:
            Number of bytes written.
        """
        destination = Path(destination)

        async def write(response: httpx.Response) -> int:
            return await self._write_stream(response, destination)

        return await self._bounded(self.avatar_url(key), write)

    async def fetch_bytes(self, key: str, cache_bust: Optional[int] = None) -> bytes:
        """Fetch the avatar for a key into memory."""
        url = self.avatar_url(key)
        if cache_bust is not None:
            url = f"{url}&t={cache_bust}"

        async def read(response: httpx.Response) -> bytes:
            return await response.aread()

        return await self._bounded(url, read)

    async def _bounded(self, url: str, consume: Callable[[httpx.Response], Awaitable[T]]) -> T:
        # wait_for cancels the in-flight request when the deadline passes
        try:
            return await asyncio.wait_for(self._get(url, consume), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"[AvatarFetcher] Timeout: {url}")
            raise FetchTimeoutError(f"Request timeout for {url}") from e
        except httpx.TimeoutException as e:
            logger.error(f"[AvatarFetcher] Timeout: {url}")
            raise FetchTimeoutError(f"Request timeout for {url}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error for {url}: {e}") from e

    async def _get(self, url: str, consume: Callable[[httpx.Response], Awaitable[T]]) -> T:
        async with self.http_client.stream("GET", url) as response:
            if response.status_code in REDIRECT_STATUSES:
                location = response.headers.get("location")
                if not location:
                    raise RedirectError(f"Redirect with no location header for {url}")
                target = urljoin(url, location)
            elif response.status_code != 200:
                raise HttpError(url, response.status_code)
            else:
                return await consume(response)

        logger.debug(f"[AvatarFetcher] Following redirect for {url} to {target}")
        return await self._get(target, consume)

    async def _write_stream(self, response: httpx.Response, destination: Path) -> int:
        tmp_path = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.part")
        written = 0
        completed = False
        try:
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        written += len(chunk)
                os.replace(tmp_path, destination)
            except OSError as e:
                raise StorageError(f"Failed to write {destination}: {e}") from e
            completed = True
        finally:
            # also runs on cancellation, so a timed-out body leaves nothing behind
            if not completed and tmp_path.exists():
                tmp_path.unlink()
        return written
