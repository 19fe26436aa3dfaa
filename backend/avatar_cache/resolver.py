"""
Avatar URL Resolver

Maps identity keys to the locally served avatar URL used by the
rendering layer.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .metadata_store import SessionMetadataStore
from .models import avatar_filename, now_ms

DEFAULT_AVATAR = "/img/default-avatar.png"
AVATAR_URL_DIR = "/img/avatars"


class AvatarUrlResolver:
    """
    Builds avatar URLs, cache-busted with the last known refresh time
    when a session store is available.
    """

    def __init__(
        self,
        avatar_dir: str = AVATAR_URL_DIR,
        store: Optional[SessionMetadataStore] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.avatar_dir = avatar_dir.rstrip("/")
        self.store = store
        self.clock = clock

    def resolve_url(self, key: str) -> str:
        url = f"{self.avatar_dir}/{avatar_filename(key)}"
        if self.store is None:
            return url

        entry = self.store.get_entry(key)
        timestamp = entry.last_updated if entry and entry.last_updated else self.clock()
        return f"{url}?t={timestamp}"

    def avatar_props(self, key: str, alt: Optional[str] = None, size: int = 64) -> Dict[str, Any]:
        """Attributes for an avatar <img>, applied the same way everywhere."""
        return {
            "src": self.resolve_url(key),
            "alt": alt or key,
            "width": size,
            "height": size,
            "loading": "lazy",
            "fallback_src": DEFAULT_AVATAR,
        }


@dataclass
class AvatarImage:
    """
    Displayed avatar with a one-shot load-error fallback.

    The handler disarms itself after firing so a missing default image
    cannot loop.
    """
    src: str
    fallback_src: str = DEFAULT_AVATAR
    error_handler_armed: bool = True

    def handle_error(self) -> bool:
        """Swap to the fallback image. Returns False once disarmed."""
        if not self.error_handler_armed:
            return False
        self.error_handler_armed = False
        self.src = self.fallback_src
        return True
