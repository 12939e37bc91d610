from __future__ import annotations

from abc import ABC, abstractmethod

from .entry import StorageEntry
from .transfer import ByteSink, ByteStream


class StorageProvider(ABC):
    """Capability set every backend offers to the browser."""

    label: str = ""
    remote: bool = False

    @abstractmethod
    def root(self) -> str:
        """Location the browser starts at."""

    @abstractmethod
    def join(self, location: str, name: str) -> str:
        """Address of the entry ``name`` listed under ``location``."""

    @abstractmethod
    def parent(self, location: str) -> str:
        """Enclosing location; the root is its own parent."""

    @abstractmethod
    def list(self, location: str) -> list[StorageEntry]:
        """Immediate children of ``location``."""

    @abstractmethod
    def open_read(self, location: str) -> ByteStream:
        pass

    @abstractmethod
    def open_write(self, location: str) -> ByteSink:
        pass

    @abstractmethod
    def delete(self, location: str) -> None:
        pass

    def describe(self, location: str) -> str:
        return f"{self.label}:{location}"
