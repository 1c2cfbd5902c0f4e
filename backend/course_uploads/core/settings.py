from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    # Server
    port: int = Field(default=3001, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CORS
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"], validation_alias="CORS_ORIGINS")

    # Object storage (S3-compatible, e.g. Cloudflare R2)
    s3_endpoint_url: str | None = Field(default=None, validation_alias="S3_ENDPOINT_URL")
    s3_region: str = Field(default="auto", validation_alias="S3_REGION")
    s3_bucket: str | None = Field(default=None, validation_alias="S3_BUCKET")
    s3_access_key_id: str | None = Field(default=None, validation_alias="S3_ACCESS_KEY_ID")
    s3_secret_access_key: str | None = Field(default=None, validation_alias="S3_SECRET_ACCESS_KEY")
    s3_download_expires_seconds: int = Field(default=3600, validation_alias="S3_DOWNLOAD_EXPIRES_SECONDS")

    # Public URL prefix for assembled objects. When unset, completed uploads get a presigned GET URL.
    public_base_url: str | None = Field(default=None, validation_alias="PUBLIC_BASE_URL")

    # Chunked uploads
    upload_chunk_size_bytes: int = Field(default=50 * 1024 * 1024, validation_alias="UPLOAD_CHUNK_SIZE_BYTES")
    upload_default_content_type: str = Field(default="video/mp4", validation_alias="UPLOAD_DEFAULT_CONTENT_TYPE")
    upload_key_prefix: str = Field(default=".uploads", validation_alias="UPLOAD_KEY_PREFIX")
    upload_cancel_scan_limit: int = Field(default=1000, validation_alias="UPLOAD_CANCEL_SCAN_LIMIT")
    upload_allow_partial_complete: bool = Field(default=False, validation_alias="UPLOAD_ALLOW_PARTIAL_COMPLETE")

    # Include diagnostic detail in 500 responses (internal/admin deployments only).
    expose_error_details: bool = Field(default=False, validation_alias="EXPOSE_ERROR_DETAILS")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        # Allow:
        # - comma-separated string: "http://a,http://b"
        # - JSON array: '["http://a","http://b"]'
        # - already-a-list
        if v is None:
            return []
        if isinstance(v, str):
            if v.strip().startswith("["):
                return json.loads(v)
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("upload_key_prefix")
    @classmethod
    def _strip_key_prefix(cls, v: str) -> str:
        v = (v or "").strip().strip("/")
        if not v:
            raise ValueError("UPLOAD_KEY_PREFIX must not be empty")
        return v

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.upload_chunk_size_bytes <= 0:
            raise ValueError("UPLOAD_CHUNK_SIZE_BYTES must be > 0")
        if self.upload_cancel_scan_limit <= 0:
            raise ValueError("UPLOAD_CANCEL_SCAN_LIMIT must be > 0")
        if self.s3_download_expires_seconds <= 0:
            raise ValueError("S3_DOWNLOAD_EXPIRES_SECONDS must be > 0")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
