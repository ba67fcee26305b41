import asyncio
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile

from api.dependencies import admin_required, get_current_user
from core.config import settings
from core.errors import ServiceError, ValidationError
from schemas.user_schema import AdminIdentity, CurrentUser
from services.upload_service import BlobImageStorage, LocalImageStorage, get_blob_storage, get_local_storage
from utils.responses import no_store_json
from utils.timing import timeit
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload")


def _check_file_count(files: List[UploadFile]) -> None:
    if not files:
        raise ValidationError("No files uploaded")
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise ValidationError(f"Too many files. Maximum {settings.MAX_UPLOAD_FILES} files allowed")


async def _read_bounded(upload: UploadFile) -> bytes:
    """Read at most one byte past the size limit so oversize files are rejected without buffering them whole."""
    return await upload.read(settings.MAX_UPLOAD_BYTES + 1)


async def _store_many(files: List[UploadFile], store) -> dict:
    """Store each file independently; one bad file does not fail the batch."""
    successful, failed = [], []
    for upload in files:
        data = await _read_bounded(upload)
        try:
            successful.append(await asyncio.to_thread(store, upload.filename or "", upload.content_type or "", data))
        except ServiceError as e:
            logger.warning(f"Upload of {upload.filename} failed: {e.detail or e.message}")
            failed.append({"filename": upload.filename, "error": e.message})
    return {
        "successful": successful,
        "failed": failed,
        "total": len(files),
        "uploaded": len(successful),
        "failed_count": len(failed),
    }


@router.post("/local")
@timeit("upload_local")
async def upload_local_single(
    image: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: LocalImageStorage = Depends(get_local_storage),
):
    data = await _read_bounded(image)
    saved = await asyncio.to_thread(storage.save, image.filename or "", image.content_type or "", data)
    return no_store_json({"success": True, "message": "Image uploaded successfully", "data": saved})


@router.post("/local/multiple")
@timeit("upload_local_multiple")
async def upload_local_multiple(
    images: List[UploadFile] = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: LocalImageStorage = Depends(get_local_storage),
):
    _check_file_count(images)
    result = await _store_many(images, storage.save)
    return no_store_json({"success": True, "message": f"{result['uploaded']} image(s) uploaded", "data": result})


@router.delete("/local/{filename}")
@timeit("delete_local")
async def delete_local_image(
    filename: str,
    current_user: CurrentUser = Depends(get_current_user),
    storage: LocalImageStorage = Depends(get_local_storage),
):
    await asyncio.to_thread(storage.delete, filename)
    return no_store_json({"success": True, "message": "Image deleted successfully", "data": {"filename": filename}})


@router.post("/cloud")
@timeit("upload_cloud")
async def upload_cloud_single(
    image: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: BlobImageStorage = Depends(get_blob_storage),
):
    data = await _read_bounded(image)
    uploaded = await asyncio.to_thread(storage.upload, image.filename or "", image.content_type or "", data)
    return no_store_json({"success": True, "message": "Image uploaded to cloud storage", "data": uploaded})


@router.post("/cloud/multiple")
@timeit("upload_cloud_multiple")
async def upload_cloud_multiple(
    images: List[UploadFile] = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: BlobImageStorage = Depends(get_blob_storage),
):
    _check_file_count(images)
    result = await _store_many(images, storage.upload)
    return no_store_json({"success": True, "message": f"{result['uploaded']} image(s) uploaded", "data": result})


@router.get("/cloud/test")
@timeit("cloud_test")
async def cloud_test(
    current_user: CurrentUser = Depends(get_current_user),
    storage: BlobImageStorage = Depends(get_blob_storage),
):
    info = await asyncio.to_thread(storage.ping)
    return no_store_json({"success": True, "message": "Cloud storage connection successful", "data": info})


@router.delete("/cloud/{blob_name:path}")
@timeit("delete_cloud")
async def delete_cloud_image(
    blob_name: str,
    current_user: CurrentUser = Depends(get_current_user),
    storage: BlobImageStorage = Depends(get_blob_storage),
):
    await asyncio.to_thread(storage.delete, blob_name)
    return no_store_json({"success": True, "message": "Image deleted successfully", "data": {"public_id": blob_name}})


@router.get("/stats")
@timeit("upload_stats")
async def upload_stats(
    admin: AdminIdentity = Depends(admin_required),
    local: LocalImageStorage = Depends(get_local_storage),
    cloud: BlobImageStorage = Depends(get_blob_storage),
):
    return no_store_json({
        "success": True,
        "data": {
            "local": await asyncio.to_thread(local.stats),
            "cloud": {"configured": cloud.configured, "container": cloud.container},
            "limits": {
                "max_file_bytes": settings.MAX_UPLOAD_BYTES,
                "max_files": settings.MAX_UPLOAD_FILES,
                "allowed_types": ["image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"],
            },
        },
    })
