from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from course_uploads.core.errors import IncompleteUpload, InvalidRequest, NotFound, StoreUnavailable
from course_uploads.schemas.upload import UploadSession
from course_uploads.storage.blob_store import BlobStore

DEFAULT_CHUNK_SIZE = 50 * 1024 * 1024
DEFAULT_CONTENT_TYPE = "video/mp4"

_FILENAME_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]")
# Upload ids are embedded in storage keys; no separators or dots allowed.
_UPLOAD_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def sanitize_file_name(name: str) -> str:
    # One replacement per character so the name keeps its length.
    return _FILENAME_UNSAFE_RE.sub("_", name)


def build_object_key(*, course_id: str, file_name: str, created_at: datetime) -> str:
    millis = int(created_at.timestamp() * 1000)
    return f"courses/{course_id}/{millis}_{file_name}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_upload_id(upload_id: str) -> bool:
    return bool(_UPLOAD_ID_RE.match(upload_id))


def _require_upload_id(upload_id: str | None, message: str) -> str:
    upload_id = (upload_id or "").strip()
    if not upload_id:
        raise InvalidRequest(message)
    if not _is_upload_id(upload_id):
        raise InvalidRequest("Invalid upload id")
    return upload_id


@dataclass(frozen=True)
class CoordinatorConfig:
    blob_store: BlobStore
    public_base_url: str | None = None
    default_chunk_size: int = DEFAULT_CHUNK_SIZE
    default_content_type: str = DEFAULT_CONTENT_TYPE
    key_prefix: str = ".uploads"
    # Chunk range swept by cancel when the session never learned its chunk count.
    cancel_scan_limit: int = 1000
    allow_partial_complete: bool = False
    url_expires_seconds: int = 3600
    clock: Callable[[], datetime] = _utcnow


@dataclass(frozen=True)
class InitiatedUpload:
    upload_id: str
    object_key: str
    chunk_size: int


@dataclass(frozen=True)
class ChunkReceipt:
    upload_id: str
    chunk_index: int

    @property
    def next_chunk(self) -> int:
        return self.chunk_index + 1


@dataclass(frozen=True)
class CompletedUpload:
    upload_id: str
    object_key: str
    url: str
    size_bytes: int
    chunk_count: int
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CancelledUpload:
    upload_id: str
    warnings: list[str] = field(default_factory=list)


class UploadCoordinator:
    """Drives chunked uploads using only the blob store as backing state.

    Per upload id:
      initiate -> chunk (any order, retries overwrite) -> complete
      cancel is allowed at any point and is always reported as successful.

    Holds no in-memory session state; any number of instances can serve the same uploads.
    """

    def __init__(self, config: CoordinatorConfig):
        self._config = config
        self._store = config.blob_store
        self._prefix = config.key_prefix.strip("/")

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    def session_key(self, upload_id: str) -> str:
        return f"{self._prefix}/{upload_id}.json"

    def chunk_key(self, upload_id: str, chunk_index: int) -> str:
        return f"{self._prefix}/{upload_id}/chunk_{int(chunk_index)}"

    async def initiate(
        self,
        *,
        file_name: str,
        course_id: str,
        content_type: str | None = None,
        total_chunks: int | None = None,
    ) -> InitiatedUpload:
        file_name = (file_name or "").strip()
        course_id = (course_id or "").strip()
        if not file_name or not course_id:
            raise InvalidRequest("Missing required fields: fileName, courseId")
        if total_chunks is not None and int(total_chunks) <= 0:
            raise InvalidRequest("totalChunks must be a positive integer")

        created_at = self._config.clock()
        safe_name = sanitize_file_name(file_name)
        session = UploadSession(
            upload_id=str(uuid4()),
            object_key=build_object_key(course_id=course_id, file_name=safe_name, created_at=created_at),
            file_name=safe_name,
            course_id=course_id,
            content_type=(content_type or "").strip() or self._config.default_content_type,
            created_at=created_at.isoformat(),
            total_chunks=int(total_chunks) if total_chunks is not None else None,
        )
        await self._save_session(session)

        logger.info(f"Upload {session.upload_id} initiated for {session.object_key}")
        return InitiatedUpload(
            upload_id=session.upload_id,
            object_key=session.object_key,
            chunk_size=int(self._config.default_chunk_size),
        )

    async def upload_chunk(
        self,
        *,
        upload_id: str,
        chunk_index: int,
        data: bytes,
        total_chunks_hint: int | None = None,
    ) -> ChunkReceipt:
        if chunk_index is None:
            raise InvalidRequest("Missing upload tracking headers")
        upload_id = _require_upload_id(upload_id, "Missing upload tracking headers")
        if int(chunk_index) < 0:
            raise InvalidRequest("X-Chunk-Index must be a non-negative integer")

        session = await self._load_session(upload_id)
        if session is None:
            raise NotFound("Upload not found")

        hint = int(total_chunks_hint or 0)
        recorded = session.total_chunks or 0
        # Every stored chunk index stays below the range cancel deletes. The record is
        # grown before the chunk lands and only when a hint or index would escape it.
        if hint > recorded or int(chunk_index) >= self._cancel_range(session):
            grown = max(recorded, hint, int(chunk_index) + 1)
            await self._save_session(session.model_copy(update={"total_chunks": grown}))

        await asyncio.to_thread(
            self._store.put,
            self.chunk_key(upload_id, chunk_index),
            bytes(data),
            metadata={
                "upload-id": upload_id,
                "chunk-index": str(int(chunk_index)),
                "total-chunks": str(hint),
            },
        )

        logger.debug(f"Upload {upload_id}: stored chunk {chunk_index} ({len(data)} bytes)")
        return ChunkReceipt(upload_id=upload_id, chunk_index=int(chunk_index))

    async def complete(self, *, upload_id: str, total_chunks: int) -> CompletedUpload:
        upload_id = _require_upload_id(upload_id, "Missing required fields: uploadId, totalChunks")
        if not total_chunks or int(total_chunks) <= 0:
            raise InvalidRequest("Missing required fields: uploadId, totalChunks")
        total = int(total_chunks)

        session = await self._load_session(upload_id)
        if session is None:
            raise NotFound("Upload not found")

        # Chunks are appended strictly in index order, whatever order they arrived in.
        buffer = bytearray()
        missing: list[int] = []
        for i in range(total):
            chunk = await asyncio.to_thread(self._store.get, self.chunk_key(upload_id, i))
            if chunk is None:
                missing.append(i)
                continue
            buffer.extend(chunk)

        warnings: list[str] = []
        if missing:
            if not self._config.allow_partial_complete:
                raise IncompleteUpload(
                    f"Upload is missing {len(missing)} of {total} chunks",
                    missing_chunks=missing,
                )
            logger.warning(f"Upload {upload_id}: assembling without chunks {missing}")
            warnings.append(f"Assembled without missing chunks: {', '.join(str(i) for i in missing)}")

        await asyncio.to_thread(
            self._store.put,
            session.object_key,
            bytes(buffer),
            content_type=session.content_type,
            metadata={
                "course-id": session.course_id,
                "upload-id": session.upload_id,
                "uploaded-at": session.created_at,
            },
        )

        chunk_keys = [self.chunk_key(upload_id, i) for i in range(total)]
        warnings.extend(await self._cleanup(upload_id, chunk_keys))

        url = await self._public_url(session.object_key)
        logger.info(f"Upload {upload_id} completed: {session.object_key} ({len(buffer)} bytes)")
        return CompletedUpload(
            upload_id=upload_id,
            object_key=session.object_key,
            url=url,
            size_bytes=len(buffer),
            chunk_count=total - len(missing),
            warnings=warnings,
        )

    async def status(self, upload_id: str) -> UploadSession:
        upload_id = (upload_id or "").strip()
        # An id that could never have been issued is simply unknown.
        if not _is_upload_id(upload_id):
            raise NotFound("Upload not found")
        session = await self._load_session(upload_id)
        if session is None:
            raise NotFound("Upload not found")
        return session

    async def cancel(self, upload_id: str) -> CancelledUpload:
        upload_id = (upload_id or "").strip()
        if not _is_upload_id(upload_id):
            # Nothing can be stored under it; no keys are built from it.
            logger.info(f"Cancel for unknown upload id {upload_id!r} ignored")
            return CancelledUpload(upload_id=upload_id)

        try:
            session = await self._load_session(upload_id)
        except StoreUnavailable as e:
            logger.warning(f"Upload {upload_id}: could not read session before cancel: {e.message}")
            session = None

        chunk_keys = [self.chunk_key(upload_id, i) for i in range(self._cancel_range(session))]
        warnings = await self._cleanup(upload_id, chunk_keys)

        logger.info(f"Upload {upload_id} cancelled")
        return CancelledUpload(upload_id=upload_id, warnings=warnings)

    def _cancel_range(self, session: UploadSession | None) -> int:
        if session is not None and session.total_chunks:
            return int(session.total_chunks)
        return int(self._config.cancel_scan_limit)

    async def _cleanup(self, upload_id: str, chunk_keys: list[str]) -> list[str]:
        """Best-effort removal of chunks and the session record. Failures become warnings."""
        warnings: list[str] = []
        try:
            failed = await asyncio.to_thread(self._store.delete_many, chunk_keys)
        except StoreUnavailable as e:
            failed = list(chunk_keys)
            logger.warning(f"Upload {upload_id}: chunk cleanup failed: {e.message}")
        if failed:
            warnings.append(f"Failed to delete {len(failed)} chunk(s)")
            logger.warning(f"Upload {upload_id}: {len(failed)} chunk(s) left behind")

        try:
            await asyncio.to_thread(self._store.delete, self.session_key(upload_id))
        except StoreUnavailable as e:
            warnings.append("Failed to delete upload session record")
            logger.warning(f"Upload {upload_id}: session cleanup failed: {e.message}")
        return warnings

    async def _public_url(self, object_key: str) -> str:
        base = (self._config.public_base_url or "").strip()
        if base:
            return f"{base.rstrip('/')}/{object_key}"
        return await asyncio.to_thread(
            self._store.presigned_url,
            object_key,
            expires_seconds=int(self._config.url_expires_seconds),
        )

    async def _load_session(self, upload_id: str) -> UploadSession | None:
        raw = await asyncio.to_thread(self._store.get, self.session_key(upload_id))
        if raw is None:
            return None
        try:
            return UploadSession.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise StoreUnavailable(f"Corrupt session record for {upload_id}", detail=str(e)) from e

    async def _save_session(self, session: UploadSession) -> None:
        payload = session.model_dump_json(by_alias=True).encode("utf-8")
        await asyncio.to_thread(
            self._store.put,
            self.session_key(session.upload_id),
            payload,
            content_type="application/json",
            metadata={"upload-id": session.upload_id},
        )
