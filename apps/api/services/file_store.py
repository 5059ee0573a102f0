"""Blob storage for uploaded prescription files"""
import logging
import os
import uuid
from datetime import datetime

from fastapi import UploadFile

from errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
}
MEDIA_TYPES = {ext: content_type for content_type, ext in ALLOWED_CONTENT_TYPES.items()}


class LocalFileStore:
    """Stores files on local disk and serves them under ``url_prefix``"""

    def __init__(self, root: str, url_prefix: str = "/api/prescriptions/files", max_bytes: int = 10 * 1024 * 1024):
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    async def save_prescription(self, file: UploadFile) -> dict:
        """Validate and persist an upload; returns ``{url, filename}``"""
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError("Invalid file type. Only JPEG, PNG, and PDF files are allowed.")

        content = await file.read()
        if not content:
            raise ValidationError("No file uploaded")
        if len(content) > self.max_bytes:
            raise ValidationError(f"File size must be at most {self.max_bytes // (1024 * 1024)}MB")

        # the client filename never picks the extension
        ext = ALLOWED_CONTENT_TYPES[file.content_type]
        filename = f"prescription_{datetime.utcnow().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}{ext}"

        os.makedirs(self.root, exist_ok=True)
        with open(os.path.join(self.root, filename), "wb") as f:
            f.write(content)

        logger.info(f"Stored prescription upload {filename} ({len(content)} bytes)")
        return {"url": f"{self.url_prefix}/{filename}", "filename": filename}

    def open_prescription(self, filename: str):
        """Return ``(path, media_type)`` for a stored upload"""
        ext = os.path.splitext(filename)[1]
        if os.path.basename(filename) != filename or not filename.startswith("prescription_") or ext not in MEDIA_TYPES:
            raise NotFound("File not found")

        path = os.path.join(self.root, filename)
        if not os.path.isfile(path):
            raise NotFound("File not found")
        return path, MEDIA_TYPES[ext]
