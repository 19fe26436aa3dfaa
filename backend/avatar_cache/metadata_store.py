"""
Avatar Metadata Stores

Two independent repositories for cache metadata:
- FileMetadataStore: the server-side metadata.json owned by the batch run
- SessionMetadataStore: the per-browser view kept in local storage

They share one interface but are never merged. Both treat missing or
corrupt content as an empty cache.
"""

import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import MutableMapping, Optional, Union

from .errors import MetadataError, StorageError
from .models import CacheEntry, CacheMetadata, avatar_filename

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"
SESSION_METADATA_KEY = "avatar_metadata"


class MetadataStore(ABC):
    """Load/save interface shared by both metadata repositories."""

    @abstractmethod
    def load(self) -> CacheMetadata:
        """Read metadata, falling back to an empty cache."""

    @abstractmethod
    def save(self, metadata: CacheMetadata) -> None:
        """Persist metadata as a full overwrite."""

    @abstractmethod
    def location_for(self, key: str) -> str:
        """Location recorded for a key's blob."""

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self.load().get(key)

    def set_entry(self, key: str, timestamp: int) -> CacheEntry:
        metadata = self.load()
        entry = metadata.record(key, timestamp, self.location_for(key))
        self.save(metadata)
        return entry


class FileMetadataStore(MetadataStore):
    """
    Server-side metadata file next to the cached avatars.

    Directory structure:
    avatar_dir/
    ├── alice.png
    ├── bob.png
    └── metadata.json
    """

    def __init__(self, avatar_dir: Union[str, Path], filename: str = METADATA_FILENAME):
        self.avatar_dir = Path(avatar_dir)
        self.metadata_file = self.avatar_dir / filename

    def ensure_dir(self) -> None:
        """Create the avatar directory if it doesn't exist."""
        try:
            self.avatar_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create avatar directory {self.avatar_dir}: {e}") from e

    def avatar_path(self, key: str) -> Path:
        return self.avatar_dir / avatar_filename(key)

    def location_for(self, key: str) -> str:
        return str(self.avatar_path(key))

    def load(self) -> CacheMetadata:
        if not self.metadata_file.exists():
            return CacheMetadata()

        try:
            with open(self.metadata_file, "r", encoding="utf-8") as f:
                try:
                    data = json.load(f)
                except ValueError as e:
                    raise MetadataError(str(e)) from e
            metadata = CacheMetadata.from_file_dict(data)
        except (OSError, MetadataError) as e:
            logger.warning(f"[AvatarStore] Failed to parse metadata file, creating new one: {e}")
            return CacheMetadata()

        logger.debug(f"[AvatarStore] Loaded {len(metadata.entries)} entries from {self.metadata_file}")
        return metadata

    def save(self, metadata: CacheMetadata) -> None:
        self.ensure_dir()
        text = json.dumps(metadata.to_file_dict(), indent=2)
        tmp_path = self.metadata_file.with_name(f".{self.metadata_file.name}.{uuid.uuid4().hex}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, self.metadata_file)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StorageError(f"Failed to save metadata {self.metadata_file}: {e}") from e


class SessionMetadataStore(MetadataStore):
    """
    Client-side metadata kept in a browser-local key/value storage.

    `storage` is any string-to-string mapping (the localStorage analogue).
    Write failures are logged and dropped, as a full or disabled local
    storage must not break the page.
    """

    def __init__(
        self,
        storage: MutableMapping[str, str],
        storage_key: str = SESSION_METADATA_KEY,
        avatar_url_dir: str = "/img/avatars",
    ):
        self.storage = storage
        self.storage_key = storage_key
        self.avatar_url_dir = avatar_url_dir.rstrip("/")

    def location_for(self, key: str) -> str:
        return f"{self.avatar_url_dir}/{avatar_filename(key)}"

    def load(self) -> CacheMetadata:
        raw = self.storage.get(self.storage_key)
        if not raw:
            return CacheMetadata()
        try:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError) as e:
                raise MetadataError(str(e)) from e
            return CacheMetadata.from_session_dict(data)
        except MetadataError as e:
            logger.error(f"[AvatarStore] Error reading avatar metadata: {e}")
            return CacheMetadata()

    def save(self, metadata: CacheMetadata) -> None:
        try:
            self.storage[self.storage_key] = json.dumps(metadata.to_session_dict())
        except Exception as e:
            logger.error(f"[AvatarStore] Error saving avatar metadata: {e}")
