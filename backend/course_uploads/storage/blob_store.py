from __future__ import annotations

from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from course_uploads.core.errors import StoreUnavailable
from course_uploads.core.settings import Settings

# S3 DeleteObjects accepts at most 1000 keys per request.
DELETE_BATCH_SIZE = 1000

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class BlobStore(Protocol):
    """Key -> bytes storage with small per-object metadata.

    Implementations are synchronous; callers on the event loop wrap them in `asyncio.to_thread`.
    """

    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None: ...

    def get(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> None: ...

    def delete_many(self, keys: list[str]) -> list[str]: ...

    def presigned_url(self, key: str, *, expires_seconds: int) -> str: ...


def _error_code(e: ClientError) -> str | None:
    return (e.response or {}).get("Error", {}).get("Code")


def s3_client(settings: Settings):
    kwargs: dict = {"service_name": "s3", "region_name": settings.s3_region}
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
    if settings.s3_access_key_id and settings.s3_secret_access_key:
        kwargs["aws_access_key_id"] = settings.s3_access_key_id
        kwargs["aws_secret_access_key"] = settings.s3_secret_access_key
    return boto3.client(**kwargs)


class S3BlobStore:
    """BlobStore backed by a single S3-compatible bucket."""

    def __init__(self, client: Any, bucket: str):
        self._client = client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = {str(k): str(v) for k, v in metadata.items()}
        try:
            self._client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"Failed to write {key}", detail=str(e)) from e

    def get(self, key: str) -> bytes | None:
        try:
            obj = self._client.get_object(Bucket=self._bucket, Key=key)
            return obj["Body"].read()
        except ClientError as e:
            if _error_code(e) in _MISSING_KEY_CODES:
                return None
            raise StoreUnavailable(f"Failed to read {key}", detail=str(e)) from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"Failed to read {key}", detail=str(e)) from e

    def delete(self, key: str) -> None:
        # S3 deletes are already no-ops for absent keys; some compatible backends answer 404 instead.
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_KEY_CODES:
                return
            raise StoreUnavailable(f"Failed to delete {key}", detail=str(e)) from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"Failed to delete {key}", detail=str(e)) from e

    def delete_many(self, keys: list[str]) -> list[str]:
        """Delete keys in batches. Returns the keys that could not be deleted."""
        failed: list[str] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            try:
                res = self._client.delete_objects(
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError):
                failed.extend(batch)
                continue
            for err in res.get("Errors") or []:
                if err.get("Code") in _MISSING_KEY_CODES:
                    continue
                failed.append(str(err.get("Key")))
        return failed

    def presigned_url(self, key: str, *, expires_seconds: int) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=int(expires_seconds),
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"Failed to sign URL for {key}", detail=str(e)) from e
