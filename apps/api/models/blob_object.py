"""BlobObject model tracking uploaded evidence files."""

import uuid

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class BlobObject(Base):
    """Metadata for a file written to blob storage."""

    __tablename__ = "blob_objects"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    handle = Column(String, nullable=False, unique=True, index=True)
    original_filename = Column(String, nullable=True)
    mime_type = Column(String, nullable=True)
    file_size_bytes = Column(Integer, nullable=True)
    uploaded_by = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
