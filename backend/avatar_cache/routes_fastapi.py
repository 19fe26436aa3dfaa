"""
Avatar Save API Routes

Provides endpoints for:
- Saving avatars fetched by the client refresher
- Health check with cache entry count
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import AvatarCacheSettings
from .errors import AvatarCacheError
from .metadata_store import FileMetadataStore
from .models import is_valid_key, now_ms

logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

settings = AvatarCacheSettings.from_env()
avatar_store = FileMetadataStore(settings.avatar_dir)

UPLOAD_CHUNK_SIZE = 64 * 1024

# Serializes metadata read-modify-write between concurrent saves
_metadata_lock = asyncio.Lock()


def get_settings() -> AvatarCacheSettings:
    return settings


def get_avatar_store() -> FileMetadataStore:
    return avatar_store


# ============================================
# Response Models
# ============================================


class SaveAvatarResponse(BaseModel):
    """Response model for a saved avatar."""
    success: bool
    githubId: str
    lastUpdated: int


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api", tags=["Avatars"])


# ============================================
# Endpoints
# ============================================


async def _write_upload(upload: UploadFile, destination: Path, max_bytes: int) -> int:
    """Copy an upload to destination via a temp file in the same directory."""
    tmp_path = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.upload")
    written = 0
    try:
        with open(tmp_path, "wb") as f:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"Avatar too large (max {max_bytes // (1024 * 1024)}MB)",
                    )
                f.write(chunk)
        os.replace(tmp_path, destination)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    return written


@router.post("/save-avatar", response_model=SaveAvatarResponse)
async def save_avatar(
    avatar: Optional[UploadFile] = File(None),
    github_id: Optional[str] = Form(None, alias="githubId"),
    store: FileMetadataStore = Depends(get_avatar_store),
    config: AvatarCacheSettings = Depends(get_settings),
):
    """
    Save an avatar uploaded by the client refresher.

    Example:
        POST /api/save-avatar  (multipart: avatar=<file>, githubId=octocat)
    """
    if avatar is None or not github_id:
        raise HTTPException(status_code=400, detail="Missing avatar file or GitHub ID")
    if not is_valid_key(github_id):
        raise HTTPException(status_code=400, detail=f"Invalid GitHub ID: {github_id}")

    try:
        store.ensure_dir()
        final_path = store.avatar_path(github_id)
        size = await _write_upload(avatar, final_path, config.max_upload_bytes)

        async with _metadata_lock:
            entry = store.set_entry(github_id, now_ms())
    except HTTPException:
        raise
    except (AvatarCacheError, OSError) as e:
        logger.error(f"[SaveAvatar] Error handling avatar upload for {github_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"[SaveAvatar] Saved avatar for {github_id} ({size} bytes)")
    return SaveAvatarResponse(success=True, githubId=github_id, lastUpdated=entry.last_updated)


@router.get("/avatars/health")
async def health_check(store: FileMetadataStore = Depends(get_avatar_store)):
    """Health check endpoint."""
    metadata = store.load()
    return JSONResponse(content={
        "status": "healthy",
        "service": "avatar-cache",
        "cached_avatars": len(metadata.entries),
        "last_run": metadata.last_batch_run,
    })
