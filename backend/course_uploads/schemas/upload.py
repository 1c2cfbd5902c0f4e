from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class UploadSession(BaseModel):
    """Session record stored next to the chunks. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    upload_id: str
    object_key: str
    file_name: str
    course_id: str
    content_type: str
    created_at: str
    total_chunks: int | None = None


class InitiateUploadRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    fileName: str = Field(min_length=1, max_length=1024)
    courseId: str = Field(min_length=1, max_length=255)
    contentType: str | None = Field(default=None, max_length=255)
    totalChunks: int | None = Field(default=None, ge=1)

    @field_validator("fileName", "courseId")
    @classmethod
    def _strip_required_strings(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Value is required")
        return v


class InitiateUploadResponse(BaseModel):
    success: bool = True
    uploadId: str
    objectKey: str
    chunkSize: int
    message: str = "Upload initiated"


class ChunkUploadRequest(BaseModel):
    """Built from the X-Upload-ID / X-Chunk-Index / X-Total-Chunks headers."""

    uploadId: str = Field(min_length=1, max_length=128)
    chunkIndex: int = Field(ge=0)
    # 0 means "not declared".
    totalChunks: int = Field(default=0, ge=0)

    @field_validator("uploadId")
    @classmethod
    def _strip_upload_id(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Value is required")
        return v


class ChunkUploadResponse(BaseModel):
    success: bool = True
    uploadId: str
    nextChunk: int
    message: str


class CompleteUploadRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uploadId: str = Field(min_length=1, max_length=128)
    totalChunks: int = Field(ge=1)

    @field_validator("uploadId")
    @classmethod
    def _strip_upload_id(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Value is required")
        return v


class CompleteUploadResponse(BaseModel):
    success: bool = True
    uploadId: str
    url: str
    objectKey: str
    sizeBytes: int
    message: str = "Upload completed successfully"
    warnings: list[str] = Field(default_factory=list)


class CancelUploadResponse(BaseModel):
    success: bool = True
    message: str = "Upload cancelled"
    warnings: list[str] = Field(default_factory=list)
