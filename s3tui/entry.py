from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

SEPARATOR = "/"


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "dir"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StorageEntry:
    """One browsable item as returned by a provider listing.

    ``location`` is the directory path (filesystem) or key prefix (object
    store) the entry was listed under. The metadata fields are only filled
    by the object store and stay ``None`` when the service omits them.
    """

    name: str
    kind: EntryKind
    location: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None
    owner: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


def sort_key(entry: StorageEntry) -> tuple[int, str]:
    order = {EntryKind.DIRECTORY: 0, EntryKind.FILE: 1, EntryKind.UNKNOWN: 2}
    return order[entry.kind], entry.name
