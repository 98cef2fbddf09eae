"""Blob storage for intervention evidence images."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path, PurePosixPath
from typing import Protocol

from config import settings

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def upload(self, path: str, data: bytes) -> str:
        ...

    def get_public_url(self, handle: str) -> str:
        ...


def sanitize_filename(filename: str) -> str:
    base = os.path.basename(filename or "image")
    safe = "".join(ch if ch.isalnum() or ch in ("-", "_", ".") else "_" for ch in base)
    return safe.lstrip(".") or "image"


def normalize_blob_path(path: str) -> str:
    """Reject absolute or parent-relative paths; return a clean relative POSIX path."""
    raw = str(path or "").replace("\\", "/").strip("/")
    parts = [part for part in PurePosixPath(raw).parts if part not in ("", ".")]
    if not parts or any(part == ".." for part in parts):
        raise ValueError(f"Invalid blob path: {path!r}")
    return "/".join(parts)


def evidence_path(filename: str, client_id: str = "") -> str:
    """Storage path for an evidence image, timestamped to keep names unique."""
    stamped = f"{int(time.time() * 1000)}_{sanitize_filename(filename)}"
    if client_id:
        return f"interventions/{sanitize_filename(client_id)}/{stamped}"
    return f"punctual_interventions/{stamped}"


class LocalBlobStore:
    """Filesystem-backed store; handles are the relative paths under ``root``."""

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def upload(self, path: str, data: bytes) -> str:
        handle = normalize_blob_path(path)
        destination = self.root / handle
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        logger.info("blob_uploaded handle=%s bytes=%s", handle, len(data))
        return handle

    def get_public_url(self, handle: str) -> str:
        return f"{self.public_base_url}/{normalize_blob_path(handle)}"


def get_blob_store() -> BlobStore:
    """FastAPI dependency returning the configured blob store."""
    return LocalBlobStore(settings.BLOB_STORAGE_DIR, settings.PUBLIC_BLOB_BASE_URL)
