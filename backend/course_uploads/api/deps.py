from __future__ import annotations

from fastapi import Depends, HTTPException, status

from course_uploads.core.settings import Settings, get_settings
from course_uploads.services.upload_coordinator import CoordinatorConfig, UploadCoordinator
from course_uploads.storage.blob_store import BlobStore, S3BlobStore, s3_client


def get_blob_store(settings: Settings = Depends(get_settings)) -> BlobStore:
    if not settings.s3_bucket:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="S3 is not configured (missing S3_BUCKET)",
        )
    return S3BlobStore(s3_client(settings), settings.s3_bucket)


def get_coordinator(
    settings: Settings = Depends(get_settings),
    blob_store: BlobStore = Depends(get_blob_store),
) -> UploadCoordinator:
    return UploadCoordinator(
        CoordinatorConfig(
            blob_store=blob_store,
            public_base_url=settings.public_base_url,
            default_chunk_size=int(settings.upload_chunk_size_bytes),
            default_content_type=settings.upload_default_content_type,
            key_prefix=settings.upload_key_prefix,
            cancel_scan_limit=int(settings.upload_cancel_scan_limit),
            allow_partial_complete=bool(settings.upload_allow_partial_complete),
            url_expires_seconds=int(settings.s3_download_expires_seconds),
        )
    )
