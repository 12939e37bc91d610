from __future__ import annotations

import io
from datetime import datetime, timezone

from botocore.exceptions import ClientError
from botocore.response import StreamingBody

from s3tui.entry import SEPARATOR, StorageEntry
from s3tui.errors import NotFoundError, PermissionDeniedError, UnsupportedError
from s3tui.objectstore import ObjectInfo, virtualize
from s3tui.provider import StorageProvider
from s3tui.transfer import ByteStream

MODIFIED = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


class MemorySink:
    def __init__(self, provider: "MemoryProvider", key: str) -> None:
        self._provider = provider
        self._key = key
        self._parts: list[bytes] = []

    def write(self, chunk) -> int:
        self._parts.append(bytes(chunk))
        return len(chunk)

    def close(self) -> None:
        self._provider.files[self._key] = b"".join(self._parts)

    def __enter__(self) -> "MemorySink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()


class MemoryProvider(StorageProvider):
    """Dictionary-backed provider laid out like a bucket."""

    def __init__(self, label: str, files=None, remote: bool = False) -> None:
        self.label = label
        self.remote = remote
        self.files: dict[str, bytes] = dict(files or {})
        self.denied: set[str] = set()
        self.list_calls: list[str] = []

    def root(self) -> str:
        return ""

    def join(self, location: str, name: str) -> str:
        return f"{location}{name}"

    def parent(self, location: str) -> str:
        trimmed = location.rstrip(SEPARATOR)
        if SEPARATOR not in trimmed:
            return ""
        return trimmed.rsplit(SEPARATOR, 1)[0] + SEPARATOR

    def list(self, location: str) -> list[StorageEntry]:
        self.list_calls.append(location)
        if location in self.denied:
            raise PermissionDeniedError("Access denied", location)
        objects = [
            ObjectInfo(key=key, size=len(data)) for key, data in self.files.items()
        ]
        return virtualize(location, objects)

    def open_read(self, location: str) -> ByteStream:
        if location not in self.files:
            raise NotFoundError("Object not found", location)
        data = self.files[location]
        chunks = [data[i : i + 4] for i in range(0, len(data), 4)]
        return ByteStream(chunks, size=len(data))

    def open_write(self, location: str) -> MemorySink:
        return MemorySink(self, location)

    def delete(self, location: str) -> None:
        if location.endswith(SEPARATOR):
            raise UnsupportedError("Deleting directories is unsupported", location)
        if location not in self.files:
            raise NotFoundError("File not found", location)
        del self.files[location]


class MemoryS3Client:
    """Bucket stub; like S3, deleting an absent key succeeds silently."""

    def __init__(self, objects=None, page_size: int = 1000) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.page_size = page_size
        self.list_calls: list[dict] = []
        self.put_calls: list[dict] = []

    def list_objects_v2(self, **kwargs):
        self.list_calls.append(kwargs)
        prefix = kwargs.get("Prefix", "")
        keys = sorted(key for key in self.objects if key.startswith(prefix))
        start = int(kwargs.get("ContinuationToken") or 0)
        page = keys[start : start + self.page_size]
        response = {
            "Contents": [
                {
                    "Key": key,
                    "Size": len(self.objects[key]),
                    "LastModified": MODIFIED,
                    "StorageClass": "STANDARD",
                    "Owner": {"DisplayName": "ops"},
                }
                for key in page
            ],
            "IsTruncated": start + self.page_size < len(keys),
        }
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + self.page_size)
        return response

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
            )
        data = self.objects[Key]
        return {
            "Body": StreamingBody(io.BytesIO(data), len(data)),
            "ContentLength": len(data),
        }

    def put_object(self, Bucket, Key, Body, ContentLength=None):
        self.put_calls.append({"Key": Key, "ContentLength": ContentLength})
        self.objects[Key] = Body.read()
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
        return {}
