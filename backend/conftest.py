from __future__ import annotations

import sys
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

# Ensure `import course_uploads...` works when running pytest from the backend directory.
BACKEND_ROOT = Path(__file__).resolve().parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from course_uploads.services.upload_coordinator import CoordinatorConfig, UploadCoordinator  # noqa: E402
from course_uploads.storage.blob_store import S3BlobStore  # noqa: E402

TEST_BUCKET = "course-videos"
PUBLIC_BASE_URL = "https://cdn.example.test"


class _Body:
    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data


class StubS3:
    """In-memory stand-in for the boto3 S3 client methods the blob store calls."""

    def __init__(self) -> None:
        # key -> {"Body": bytes, "ContentType": str | None, "Metadata": dict}
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        # (operation, key) pairs that should fail with a non-404 ClientError.
        self.fail_on: set[tuple[str, str]] = set()

    def _maybe_fail(self, op: str, key: str) -> None:
        if (op, key) in self.fail_on or (op, "*") in self.fail_on:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, op)

    def put_object(self, *, Bucket, Key, Body, ContentType=None, Metadata=None):
        self.calls.append(("PutObject", Key))
        self._maybe_fail("PutObject", Key)
        self.objects[Key] = {"Body": bytes(Body), "ContentType": ContentType, "Metadata": dict(Metadata or {})}
        return {}

    def get_object(self, *, Bucket, Key):
        self.calls.append(("GetObject", Key))
        self._maybe_fail("GetObject", Key)
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        obj = self.objects[Key]
        return {"Body": _Body(obj["Body"]), "ContentType": obj["ContentType"], "Metadata": obj["Metadata"]}

    def delete_object(self, *, Bucket, Key):
        self.calls.append(("DeleteObject", Key))
        self._maybe_fail("DeleteObject", Key)
        self.objects.pop(Key, None)
        return {}

    def delete_objects(self, *, Bucket, Delete):
        keys = [o["Key"] for o in Delete["Objects"]]
        self.calls.append(("DeleteObjects", f"{len(keys)} keys"))
        self._maybe_fail("DeleteObjects", "*")
        errors = []
        for k in keys:
            if ("DeleteObjects", k) in self.fail_on:
                errors.append({"Key": k, "Code": "AccessDenied", "Message": "denied"})
                continue
            self.objects.pop(k, None)
        return {"Errors": errors} if errors else {}

    def generate_presigned_url(self, *, ClientMethod, Params, ExpiresIn):
        return f"https://signed.example.test/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)


@pytest.fixture
def stub_s3() -> StubS3:
    return StubS3()


@pytest.fixture
def blob_store(stub_s3: StubS3) -> S3BlobStore:
    return S3BlobStore(stub_s3, TEST_BUCKET)


@pytest.fixture
def coordinator(blob_store: S3BlobStore) -> UploadCoordinator:
    return UploadCoordinator(CoordinatorConfig(blob_store=blob_store, public_base_url=PUBLIC_BASE_URL))
