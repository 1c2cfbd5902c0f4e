from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from course_uploads.api.deps import get_coordinator
from course_uploads.core.errors import InvalidRequest
from course_uploads.schemas.upload import (
    CancelUploadResponse,
    ChunkUploadRequest,
    ChunkUploadResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    InitiateUploadRequest,
    InitiateUploadResponse,
    UploadSession,
)
from course_uploads.services.upload_coordinator import UploadCoordinator

router = APIRouter(tags=["uploads"])


@router.post("/upload", response_model=InitiateUploadResponse)
async def initiate_upload(
    body: InitiateUploadRequest,
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> InitiateUploadResponse:
    started = await coordinator.initiate(
        file_name=body.fileName,
        course_id=body.courseId,
        content_type=body.contentType,
        total_chunks=body.totalChunks,
    )
    return InitiateUploadResponse(
        uploadId=started.upload_id,
        objectKey=started.object_key,
        chunkSize=started.chunk_size,
    )


@router.put("/chunk", response_model=ChunkUploadResponse)
async def upload_chunk(
    request: Request,
    upload_id: str | None = Header(default=None, alias="X-Upload-ID"),
    chunk_index: str | None = Header(default=None, alias="X-Chunk-Index"),
    total_chunks: str | None = Header(default=None, alias="X-Total-Chunks"),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> ChunkUploadResponse:
    if not upload_id or chunk_index is None:
        raise InvalidRequest("Missing upload tracking headers")

    try:
        parsed = ChunkUploadRequest(
            uploadId=upload_id,
            chunkIndex=chunk_index,
            totalChunks=total_chunks or 0,
        )
    except ValidationError as e:
        raise InvalidRequest("Invalid upload tracking headers", detail=str(e)) from e

    data = await request.body()
    receipt = await coordinator.upload_chunk(
        upload_id=parsed.uploadId,
        chunk_index=parsed.chunkIndex,
        total_chunks_hint=parsed.totalChunks,
        data=data,
    )
    return ChunkUploadResponse(
        uploadId=receipt.upload_id,
        nextChunk=receipt.next_chunk,
        message=f"Chunk {receipt.next_chunk} received",
    )


@router.post("/complete", response_model=CompleteUploadResponse)
async def complete_upload(
    body: CompleteUploadRequest,
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> CompleteUploadResponse:
    done = await coordinator.complete(upload_id=body.uploadId, total_chunks=body.totalChunks)
    return CompleteUploadResponse(
        uploadId=done.upload_id,
        url=done.url,
        objectKey=done.object_key,
        sizeBytes=done.size_bytes,
        warnings=list(done.warnings),
    )


@router.get("/status/{upload_id}")
async def upload_status(
    upload_id: str,
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> dict:
    session: UploadSession = await coordinator.status(upload_id)
    return session.model_dump(by_alias=True)


@router.delete("/cancel/{upload_id}", response_model=CancelUploadResponse)
async def cancel_upload(
    upload_id: str,
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> CancelUploadResponse:
    cancelled = await coordinator.cancel(upload_id)
    return CancelUploadResponse(warnings=list(cancelled.warnings))
