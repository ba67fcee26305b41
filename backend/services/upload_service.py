"""Image storage pass-through: local disk or Azure Blob Storage.

Neither backend transforms images; they validate, store and hand back a URL.
"""
import mimetypes
import os
import secrets
import time
from pathlib import Path
from typing import Optional
import logging

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from core.config import settings
from core.errors import NotConfiguredError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def validate_image(filename: str, content_type: Optional[str], size: int, max_bytes: Optional[int] = None) -> None:
    max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES
    if not filename:
        raise ValidationError("No file uploaded")
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only JPEG, JPG, PNG, GIF, and WebP image files are allowed")
    if size > max_bytes:
        raise ValidationError(f"File size too large. Maximum size allowed is {max_bytes // (1024 * 1024)}MB")
    if size == 0:
        raise ValidationError("Uploaded file is empty")


def _extension_for(filename: str, content_type: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    if ext:
        return ext
    return ALLOWED_IMAGE_TYPES.get(content_type) or mimetypes.guess_extension(content_type) or ".bin"


def unique_image_name(filename: str, content_type: str) -> str:
    """image-<epoch ms>-<random><ext>, collision-safe across concurrent uploads."""
    return f"image-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{_extension_for(filename, content_type)}"


class LocalImageStorage:
    def __init__(self, root: str, public_prefix: str = "/uploads"):
        self.images_dir = Path(root) / "images"
        self.public_prefix = public_prefix.rstrip("/")

    def _ensure_dir(self) -> None:
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def save(self, filename: str, content_type: str, data: bytes) -> dict:
        validate_image(filename, content_type, len(data))
        self._ensure_dir()
        stored_name = unique_image_name(filename, content_type)
        target = self.images_dir / stored_name
        try:
            target.write_bytes(data)
        except OSError as e:
            raise StorageError("Failed to save image", detail=str(e)) from e
        logger.info(f"Stored local image {stored_name} ({len(data)} bytes)")
        return {
            "filename": stored_name,
            "original_name": filename,
            "size": len(data),
            "mimetype": content_type,
            "url": f"{self.public_prefix}/images/{stored_name}",
        }

    def delete(self, filename: str) -> None:
        # Only bare file names; anything with a path component is rejected
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise ValidationError("Invalid filename")
        target = self.images_dir / filename
        if not target.is_file():
            raise NotFoundError("File not found")
        try:
            target.unlink()
        except OSError as e:
            raise StorageError("Failed to delete image", detail=str(e)) from e
        logger.info(f"Deleted local image {filename}")

    def stats(self) -> dict:
        files = [p for p in self.images_dir.iterdir() if p.is_file()] if self.images_dir.exists() else []
        total = sum(p.stat().st_size for p in files)
        return {
            "directory": str(self.images_dir),
            "file_count": len(files),
            "total_bytes": total,
        }


class BlobImageStorage:
    def __init__(self, connection_string: Optional[str], container: str, folder: str = ""):
        self.connection_string = connection_string
        self.container = container
        self.folder = folder.strip("/")
        self._service: Optional[BlobServiceClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.connection_string)

    def _container_client(self):
        if not self.configured:
            raise NotConfiguredError("Cloud storage is not configured")
        if self._service is None:
            self._service = BlobServiceClient.from_connection_string(self.connection_string)
        return self._service.get_container_client(self.container)

    def _blob_name(self, stored_name: str) -> str:
        return f"{self.folder}/{stored_name}" if self.folder else stored_name

    def upload(self, filename: str, content_type: str, data: bytes) -> dict:
        validate_image(filename, content_type, len(data))
        blob_name = self._blob_name(unique_image_name(filename, content_type))
        try:
            blob = self._container_client().get_blob_client(blob_name)
            blob.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
        except AzureError as e:
            raise StorageError("Failed to upload image", detail=str(e)) from e
        logger.info(f"Uploaded blob {blob_name} ({len(data)} bytes)")
        return {
            "public_id": blob_name,
            "url": blob.url,
            "original_name": filename,
            "size": len(data),
            "mimetype": content_type,
        }

    def _check_owned(self, blob_name: str) -> None:
        """Only blobs under the configured folder may be deleted through this gateway."""
        if not blob_name or ".." in blob_name.split("/"):
            raise ValidationError("Invalid image id")
        if self.folder and not blob_name.startswith(f"{self.folder}/"):
            raise ValidationError("Invalid image id")

    def delete(self, blob_name: str) -> None:
        self._check_owned(blob_name)
        try:
            self._container_client().get_blob_client(blob_name).delete_blob()
        except ResourceNotFoundError as e:
            raise NotFoundError("Image not found") from e
        except AzureError as e:
            raise StorageError("Failed to delete image", detail=str(e)) from e
        logger.info(f"Deleted blob {blob_name}")

    def ping(self) -> dict:
        try:
            exists = self._container_client().exists()
        except AzureError as e:
            raise StorageError("Cloud storage is unreachable", detail=str(e)) from e
        return {"container": self.container, "container_exists": bool(exists)}


def get_local_storage() -> LocalImageStorage:
    return LocalImageStorage(settings.UPLOAD_DIR)


def get_blob_storage() -> BlobImageStorage:
    return BlobImageStorage(settings.AZURE_BLOB_CONN_STRING, settings.AZURE_BLOB_CONTAINER, settings.AZURE_BLOB_FOLDER)
