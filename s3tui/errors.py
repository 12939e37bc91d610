from __future__ import annotations

import errno
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError


class StorageError(Exception):
    """Base class for provider failures surfaced to the browser."""

    def __init__(self, message: str, location: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location:
            return f"{self.message}: {self.location}"
        return self.message


class NotFoundError(StorageError):
    pass


class UnsupportedError(StorageError):
    pass


class PermissionDeniedError(StorageError):
    pass


class TransientError(StorageError):
    """An interrupted operation that can be retried as-is."""


class BackendError(StorageError):
    """Transport or authentication failure reported by the object store."""


NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}
ACCESS_DENIED_CODES = {"403", "AccessDenied", "AllAccessDisabled", "Forbidden"}


def from_os_error(exc: OSError, location: Optional[str] = None) -> StorageError:
    if isinstance(exc, FileNotFoundError):
        return NotFoundError("No such file or directory", location)
    if isinstance(exc, PermissionError):
        return PermissionDeniedError("Permission denied", location)
    if isinstance(exc, IsADirectoryError):
        return UnsupportedError("Path points to a directory", location)
    if isinstance(exc, NotADirectoryError):
        return UnsupportedError("Path points to a non-directory file", location)
    if isinstance(exc, InterruptedError) or exc.errno in {errno.EAGAIN, errno.EINTR}:
        return TransientError("Interrupted I/O", location)
    return StorageError(exc.strerror or str(exc), location)


def client_error_code(exc: ClientError) -> str:
    error = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
    return str(error.get("Code", ""))


def from_client_error(exc: Exception, location: Optional[str] = None) -> StorageError:
    if isinstance(exc, ClientError):
        code = client_error_code(exc)
        if code in NOT_FOUND_CODES:
            return NotFoundError("Object not found", location)
        if code in ACCESS_DENIED_CODES:
            return PermissionDeniedError("Access denied", location)
        return BackendError(f"{code or type(exc).__name__}: {exc}", location)
    if isinstance(exc, BotoCoreError):
        return BackendError(f"{type(exc).__name__}: {exc}", location)
    return BackendError(f"{type(exc).__name__}: {exc}", location)
