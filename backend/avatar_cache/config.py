"""
Avatar Cache Configuration

Settings come from environment variables; the CLI overrides individual
fields with its flags.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .staleness import DAY_MS

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[AvatarConfig] Invalid {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[AvatarConfig] Invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class AvatarCacheSettings:
    """Configuration for the avatar cache."""
    avatar_dir: Path = Path("./static/img/avatars")
    host: str = "github.com"
    size: int = 128                     # Requested avatar size in pixels
    ttl_days: int = 7
    fetch_timeout: float = 10.0         # Seconds, whole redirect chain
    roster_file: Path = Path("./committers.json")
    max_upload_mb: int = 5

    @property
    def ttl_ms(self) -> int:
        return self.ttl_days * DAY_MS

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "AvatarCacheSettings":
        defaults = cls()
        return cls(
            avatar_dir=Path(os.getenv("AVATAR_DIR", str(defaults.avatar_dir))),
            host=os.getenv("AVATAR_HOST", defaults.host),
            size=_env_int("AVATAR_SIZE", defaults.size),
            ttl_days=_env_int("AVATAR_TTL_DAYS", defaults.ttl_days),
            fetch_timeout=_env_float("AVATAR_FETCH_TIMEOUT", defaults.fetch_timeout),
            roster_file=Path(os.getenv("AVATAR_ROSTER_FILE", str(defaults.roster_file))),
            max_upload_mb=_env_int("AVATAR_MAX_UPLOAD_MB", defaults.max_upload_mb),
        )
