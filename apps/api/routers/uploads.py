"""Evidence image upload router."""

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.blob_object import BlobObject
from routers.auth_scope import AuthContext, require_admin
from services import store
from services.blob_store import BlobStore, evidence_path, get_blob_store, sanitize_filename

router = APIRouter()
logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".heic"}
ALLOWED_IMAGE_MIME_PREFIXES = ("image/",)


class UploadedImage(BaseModel):
    handle: str
    url: str
    file_name: str
    file_size_bytes: int


class UploadImagesResponse(BaseModel):
    images: List[UploadedImage]
    urls: List[str]


async def _read_capped(file: UploadFile, limit: int) -> bytes:
    chunks = []
    total_size = 0
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > limit:
            raise HTTPException(
                status_code=413,
                detail=f"Image {file.filename} exceeds {limit // (1024 * 1024)}MB limit.",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/images", response_model=UploadImagesResponse)
async def upload_images(
    files: List[UploadFile] = File(...),
    client_id: Optional[str] = Form(default=None),
    admin: AuthContext = Depends(require_admin),
    blob_store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db),
):
    """Store evidence images and return their public URLs in upload order."""
    uploaded: List[UploadedImage] = []
    for file in files:
        file_name = sanitize_filename(file.filename or "image")
        suffix = Path(file_name).suffix.lower()
        content_type = (file.content_type or "").lower()
        if suffix not in ALLOWED_IMAGE_EXTENSIONS or not content_type.startswith(ALLOWED_IMAGE_MIME_PREFIXES):
            raise HTTPException(
                status_code=422,
                detail=f"Unsupported file type for {file_name}. Upload PNG or JPG images.",
            )

        data = await _read_capped(file, int(settings.MAX_IMAGE_UPLOAD_BYTES))
        try:
            handle = blob_store.upload(evidence_path(file_name, client_id or ""), data)
        except (OSError, ValueError) as exc:
            logger.exception("Image upload failed for %s: %s", file_name, exc)
            raise HTTPException(status_code=503, detail=f"Error al subir la imagen {file_name}") from exc

        store.create_record(
            db,
            BlobObject,
            {
                "handle": handle,
                "original_filename": file_name,
                "mime_type": content_type or None,
                "file_size_bytes": len(data),
                "uploaded_by": admin.user_id,
            },
        )
        uploaded.append(
            UploadedImage(
                handle=handle,
                url=blob_store.get_public_url(handle),
                file_name=file_name,
                file_size_bytes=len(data),
            )
        )

    await db.commit()
    return UploadImagesResponse(images=uploaded, urls=[item.url for item in uploaded])
