from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .entry import SEPARATOR, EntryKind, StorageEntry, sort_key
from .errors import from_client_error, from_os_error
from .provider import StorageProvider
from .transfer import CHUNK_SIZE, ByteStream

logger = logging.getLogger(__name__)

SPOOL_MAX_MEMORY = 8 * 1024 * 1024


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None
    owner: Optional[str] = None


def virtualize(prefix: str, objects: Iterable[ObjectInfo]) -> list[StorageEntry]:
    """Turn a flat key listing under ``prefix`` into one directory level.

    Keys naming a file directly under the prefix become FILE entries. Keys
    below a sub-prefix (a marker object ``sub/`` or anything deeper such as
    ``sub/x/y``) all collapse into a single DIRECTORY entry ``sub/``.
    """
    files: dict[str, StorageEntry] = {}
    dirs: dict[str, StorageEntry] = {}
    for obj in objects:
        if not obj.key.startswith(prefix):
            continue
        rest = obj.key[len(prefix) :]
        if not rest:
            continue
        cut = rest.find(SEPARATOR)
        if cut < 0:
            files[rest] = StorageEntry(
                name=rest,
                kind=EntryKind.FILE,
                location=prefix,
                size=obj.size,
                last_modified=obj.last_modified,
                storage_class=obj.storage_class,
                owner=obj.owner,
            )
            continue
        name = rest[: cut + 1]
        if name == rest:
            # marker object for the directory itself
            dirs[name] = StorageEntry(
                name=name,
                kind=EntryKind.DIRECTORY,
                location=prefix,
                size=obj.size,
                last_modified=obj.last_modified,
                storage_class=obj.storage_class,
                owner=obj.owner,
            )
        elif name not in dirs:
            dirs[name] = StorageEntry(
                name=name, kind=EntryKind.DIRECTORY, location=prefix
            )
    entries = list(dirs.values()) + list(files.values())
    entries.sort(key=sort_key)
    return entries


def _object_info(entry: dict) -> Optional[ObjectInfo]:
    key = entry.get("Key")
    if not isinstance(key, str) or not key:
        return None
    size = entry.get("Size")
    owner = entry.get("Owner")
    owner_name = owner.get("DisplayName") if isinstance(owner, dict) else None
    return ObjectInfo(
        key=key,
        size=int(size) if size is not None else None,
        last_modified=entry.get("LastModified"),
        storage_class=entry.get("StorageClass"),
        owner=owner_name,
    )


def _body_chunks(body, key: str) -> Iterator[bytes]:
    try:
        for chunk in body.iter_chunks(chunk_size=CHUNK_SIZE):
            if chunk:
                yield chunk
    except (ClientError, BotoCoreError) as exc:
        raise from_client_error(exc, key) from exc


class ObjectSink:
    """Collects an upload in a spool file and sends it with one PUT on close.

    S3 needs the content length up front, so nothing reaches the bucket until
    the whole stream has been written. Leaving the ``with`` block through an
    exception discards the spool.
    """

    def __init__(self, client, bucket: str, key: str) -> None:
        self._client = client
        self.bucket = bucket
        self.key = key
        self._spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
        self._size = 0

    def write(self, chunk: bytes) -> int:
        try:
            written = self._spool.write(chunk)
        except OSError as exc:
            raise from_os_error(exc, self.key) from exc
        self._size += written
        return written

    def close(self) -> None:
        if self._spool.closed:
            return
        try:
            self._spool.seek(0)
            self._client.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=self._spool,
                ContentLength=self._size,
            )
        except (ClientError, BotoCoreError) as exc:
            raise from_client_error(exc, self.key) from exc
        except OSError as exc:
            raise from_os_error(exc, self.key) from exc
        finally:
            self._spool.close()
        logger.info("Uploaded %d bytes to s3://%s/%s", self._size, self.bucket, self.key)

    def discard(self) -> None:
        if not self._spool.closed:
            self._spool.close()

    def __enter__(self) -> ObjectSink:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.discard()
            return
        self.close()


class ObjectStoreProvider(StorageProvider):
    remote = True

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        client=None,
    ) -> None:
        self.bucket = bucket
        self._region = region
        self._profile = None if profile == "default" else profile
        self._client_instance = client
        self.label = f"s3://{bucket}"

    def _client(self):
        if self._client_instance is not None:
            return self._client_instance
        try:
            if self._profile is None:
                session = boto3.session.Session()
            else:
                session = boto3.session.Session(profile_name=self._profile)
            if self._region:
                client = session.client("s3", region_name=self._region)
            else:
                client = session.client("s3")
        except (ClientError, BotoCoreError) as exc:
            raise from_client_error(exc, self.label) from exc
        self._client_instance = client
        return client

    def root(self) -> str:
        return ""

    def join(self, location: str, name: str) -> str:
        return f"{location}{name}"

    def parent(self, location: str) -> str:
        trimmed = location.rstrip(SEPARATOR)
        if SEPARATOR not in trimmed:
            return ""
        return trimmed.rsplit(SEPARATOR, 1)[0] + SEPARATOR

    def list_objects(self, prefix: str) -> list[ObjectInfo]:
        client = self._client()
        objects: list[ObjectInfo] = []
        continuation: Optional[str] = None
        while True:
            kwargs = {
                "Bucket": self.bucket,
                "Prefix": prefix,
                "FetchOwner": True,
                "MaxKeys": 1000,
            }
            if continuation:
                kwargs["ContinuationToken"] = continuation
            try:
                response = client.list_objects_v2(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                raise from_client_error(exc, self.describe(prefix)) from exc
            for entry in response.get("Contents", []):
                info = _object_info(entry)
                if info is not None:
                    objects.append(info)
            if response.get("IsTruncated"):
                continuation = response.get("NextContinuationToken")
            else:
                break
        return objects

    def list(self, location: str) -> list[StorageEntry]:
        objects = self.list_objects(location)
        entries = virtualize(location, objects)
        logger.debug(
            "Listed %d keys as %d entries under %s",
            len(objects),
            len(entries),
            self.describe(location),
        )
        return entries

    def open_read(self, location: str) -> ByteStream:
        client = self._client()
        try:
            response = client.get_object(Bucket=self.bucket, Key=location)
        except (ClientError, BotoCoreError) as exc:
            raise from_client_error(exc, self.describe(location)) from exc
        body = response["Body"]
        size = response.get("ContentLength")
        return ByteStream(
            _body_chunks(body, self.describe(location)),
            size=size if isinstance(size, int) else None,
            close=body.close,
        )

    def open_write(self, location: str) -> ObjectSink:
        return ObjectSink(self._client(), self.bucket, location)

    def delete(self, location: str) -> None:
        client = self._client()
        try:
            client.delete_object(Bucket=self.bucket, Key=location)
        except (ClientError, BotoCoreError) as exc:
            raise from_client_error(exc, self.describe(location)) from exc
        logger.info("Deleted %s", self.describe(location))

    def describe(self, location: str) -> str:
        return f"{self.label}/{location}"
