from __future__ import annotations

import logging
import os
import stat
from typing import BinaryIO, Iterator, Optional

from .entry import SEPARATOR, EntryKind, StorageEntry, sort_key
from .errors import (
    NotFoundError,
    PermissionDeniedError,
    UnsupportedError,
    from_os_error,
)
from .provider import StorageProvider
from .transfer import CHUNK_SIZE, ByteStream

logger = logging.getLogger(__name__)


def _read_chunks(handle: BinaryIO, path: str) -> Iterator[bytes]:
    while True:
        try:
            chunk = handle.read1(CHUNK_SIZE)
        except OSError as exc:
            raise from_os_error(exc, path) from exc
        if not chunk:
            return
        yield chunk


class FileSink:
    """Buffered writer for one local file."""

    def __init__(self, handle: BinaryIO, path: str) -> None:
        self._handle = handle
        self.path = path

    def write(self, chunk: bytes) -> Optional[int]:
        try:
            return self._handle.write(chunk)
        except OSError as exc:
            raise from_os_error(exc, self.path) from exc

    def close(self) -> None:
        if self._handle.closed:
            return
        try:
            self._handle.close()
        except OSError as exc:
            raise from_os_error(exc, self.path) from exc

    def __enter__(self) -> FileSink:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class FilesystemProvider(StorageProvider):
    remote = False

    def __init__(self, root: str = ".") -> None:
        self._root = os.path.abspath(os.path.expanduser(root))
        self.label = "local"

    def root(self) -> str:
        return self._root

    def join(self, location: str, name: str) -> str:
        return os.path.join(location, name.rstrip(SEPARATOR))

    def parent(self, location: str) -> str:
        path = os.path.abspath(location)
        if path == self._root:
            return path
        parent = os.path.dirname(path)
        if os.path.commonpath([parent, self._root]) != self._root:
            return self._root
        return parent

    def _stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def _kind_for(self, path: str) -> EntryKind:
        try:
            info = self._stat(path)
        except OSError as exc:
            logger.debug("Metadata probe failed for %s: %s", path, exc)
            return EntryKind.UNKNOWN
        if stat.S_ISDIR(info.st_mode):
            return EntryKind.DIRECTORY
        return EntryKind.FILE

    def list(self, location: str) -> list[StorageEntry]:
        if not os.path.lexists(location):
            raise NotFoundError("Directory not found", location)
        try:
            info = self._stat(location)
        except OSError as exc:
            raise PermissionDeniedError(
                "Couldn't access directory metadata", location
            ) from exc
        if not stat.S_ISDIR(info.st_mode):
            raise UnsupportedError("Path points to a non-directory file", location)
        try:
            names = os.listdir(location)
        except OSError as exc:
            raise PermissionDeniedError("Couldn't read directory", location) from exc

        entries: list[StorageEntry] = []
        for name in names:
            kind = self._kind_for(os.path.join(location, name))
            if kind is EntryKind.DIRECTORY:
                name = f"{name}{SEPARATOR}"
            entries.append(StorageEntry(name=name, kind=kind, location=location))
        entries.sort(key=sort_key)
        logger.debug("Listed %d entries in %s", len(entries), location)
        return entries

    def open_read(self, location: str) -> ByteStream:
        try:
            handle = open(location, "rb")
        except OSError as exc:
            raise from_os_error(exc, location) from exc
        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError:
            size = None
        return ByteStream(_read_chunks(handle, location), size=size, close=handle.close)

    def open_write(self, location: str) -> FileSink:
        try:
            handle = open(location, "wb")
        except IsADirectoryError as exc:
            raise UnsupportedError("Path points to a directory", location) from exc
        except FileNotFoundError as exc:
            raise NotFoundError("Couldn't create file", location) from exc
        except OSError as exc:
            raise PermissionDeniedError("Couldn't create file", location) from exc
        return FileSink(handle, location)

    def delete(self, location: str) -> None:
        if not os.path.lexists(location):
            raise NotFoundError("File not found", location)
        try:
            info = os.lstat(location)
        except OSError as exc:
            raise PermissionDeniedError("Couldn't access file metadata", location) from exc
        if stat.S_ISDIR(info.st_mode):
            raise UnsupportedError("Deleting directories is unsupported", location)
        try:
            os.remove(location)
        except FileNotFoundError as exc:
            raise NotFoundError("File not found", location) from exc
        except OSError as exc:
            raise PermissionDeniedError("Couldn't delete file", location) from exc
        logger.info("Deleted %s", location)
