from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence

from .entry import EntryKind, StorageEntry
from .errors import StorageError, UnsupportedError
from .events import Event, EventChannel, EventKind
from .keys import DEFAULT_KEYMAP, Action
from .provider import StorageProvider
from .transfer import TransferProgress, copy

logger = logging.getLogger(__name__)

CHANNEL_POLL_SECONDS = 0.5


class Mode(Enum):
    IDLE = "idle"
    LISTING = "listing"
    TRANSFERRING = "transferring"
    CONFIRMING_DELETE = "confirming_delete"


@dataclass(frozen=True)
class Frame:
    """Everything the renderer needs for one redraw."""

    title: str
    location: str
    entries: tuple[StorageEntry, ...]
    selected: int
    status: str
    mode: Mode
    progress: Optional[TransferProgress] = None
    transfer_label: str = ""


class Browser:
    def __init__(
        self,
        providers: Sequence[StorageProvider],
        render: Callable[[Frame], None],
        on_shutdown: Optional[Callable[[], None]] = None,
        keymap: Optional[Mapping[str, Action]] = None,
    ) -> None:
        if not providers:
            raise ValueError("At least one storage provider is required")
        self.providers = list(providers)
        self.render = render
        self.on_shutdown = on_shutdown
        self.keymap = dict(keymap or DEFAULT_KEYMAP)
        self.active = 0
        self.locations = [provider.root() for provider in self.providers]
        self.entries: list[StorageEntry] = []
        self.selected = 0
        self.status = ""
        self.mode = Mode.IDLE
        self.progress: Optional[TransferProgress] = None
        self.running = True
        self._pending_delete: Optional[str] = None
        self._drawn_revision: Optional[int] = None

    @property
    def provider(self) -> StorageProvider:
        return self.providers[self.active]

    @property
    def location(self) -> str:
        return self.locations[self.active]

    @property
    def peer(self) -> Optional[StorageProvider]:
        if len(self.providers) < 2:
            return None
        return self.providers[(self.active + 1) % len(self.providers)]

    def selected_entry(self) -> Optional[StorageEntry]:
        if 0 <= self.selected < len(self.entries):
            return self.entries[self.selected]
        return None

    def transfer_label(self) -> str:
        if self.peer is None:
            return ""
        return "Download" if self.provider.remote else "Upload"

    def frame(self) -> Frame:
        return Frame(
            title=self.provider.label,
            location=self.location,
            entries=tuple(self.entries),
            selected=self.selected,
            status=self.status,
            mode=self.mode,
            progress=self.progress,
            transfer_label=self.transfer_label(),
        )

    def redraw(self) -> None:
        if self.progress is not None:
            self._drawn_revision = self.progress.revision
        self.render(self.frame())

    async def run(self, channel: EventChannel) -> None:
        await self._guard(self.refresh)
        self.redraw()
        try:
            while self.running and not channel.closed:
                event = await asyncio.to_thread(channel.get, CHANNEL_POLL_SECONDS)
                if event is None:
                    continue
                await self.handle_event(event)
        finally:
            channel.close()

    async def handle_event(self, event: Event) -> bool:
        if not self.running:
            return False
        if event.kind is EventKind.SHUTDOWN:
            self.running = False
            logger.debug("Shutdown requested")
            if self.on_shutdown is not None:
                self.on_shutdown()
            return False
        if event.kind is EventKind.TICK:
            if self.progress is not None and self.progress.revision != self._drawn_revision:
                self.redraw()
            return True
        if event.key is not None:
            await self.handle_key(event.key)
        self.redraw()
        return True

    async def handle_key(self, key: str) -> None:
        action = self.keymap.get(key)
        if self.mode is Mode.CONFIRMING_DELETE:
            if action is Action.CONFIRM:
                await self._guard(self._delete_pending)
            else:
                self.status = f"Delete of {self._pending_delete} cancelled"
                self._pending_delete = None
                self.mode = Mode.IDLE
            return
        handlers = {
            Action.MOVE_UP: self.move_up,
            Action.MOVE_DOWN: self.move_down,
            Action.ENTER: self.enter,
            Action.GO_UP: self.go_up,
            Action.TRANSFER: self.transfer,
            Action.DELETE: self.request_delete,
            Action.SWITCH: self.switch_provider,
            Action.REFRESH: self.refresh,
        }
        handler = handlers.get(action)
        if handler is None:
            return
        self.status = ""
        await self._guard(handler)

    async def _guard(self, operation) -> None:
        try:
            await operation()
        except StorageError as exc:
            logger.warning("%s failed: %s", getattr(operation, "__name__", "operation"), exc)
            self.status = str(exc)
            self._pending_delete = None
            self.mode = Mode.IDLE

    async def move_up(self) -> None:
        if self.selected > 0:
            self.selected -= 1

    async def move_down(self) -> None:
        if self.selected < len(self.entries) - 1:
            self.selected += 1

    async def _load(self, location: str, select: Optional[str] = None) -> None:
        provider = self.provider
        self.mode = Mode.LISTING
        try:
            entries = await asyncio.to_thread(provider.list, location)
        finally:
            self.mode = Mode.IDLE
        self.locations[self.active] = location
        self.entries = entries
        self._restore_selection(select)

    def _restore_selection(self, name: Optional[str]) -> None:
        if name is not None:
            for index, entry in enumerate(self.entries):
                if entry.name == name:
                    self.selected = index
                    return
        self.selected = max(0, min(self.selected, len(self.entries) - 1))

    async def refresh(self) -> None:
        current = self.selected_entry()
        await self._load(self.location, current.name if current else None)

    async def enter(self) -> None:
        entry = self.selected_entry()
        if entry is None:
            return
        if entry.kind is EntryKind.DIRECTORY:
            self.selected = 0
            await self._load(self.provider.join(self.location, entry.name))
            return
        if entry.kind is EntryKind.UNKNOWN:
            self.status = f"Cannot open {entry.name}: unknown entry type"
            return
        self.status = f"{entry.name} is a file"

    async def go_up(self) -> None:
        location = self.location
        parent = self.provider.parent(location)
        if parent == location:
            self.status = "Already at the top"
            return
        child = location[len(parent) :].strip("/\\")
        await self._load(parent, select=f"{child}/" if child else None)

    async def switch_provider(self) -> None:
        if len(self.providers) < 2:
            return
        self.active = (self.active + 1) % len(self.providers)
        self.entries = []
        self.selected = 0
        await self._load(self.location)

    async def transfer(self) -> None:
        entry = self.selected_entry()
        peer = self.peer
        if entry is None or peer is None:
            return
        if entry.kind is not EntryKind.FILE:
            raise UnsupportedError("Only files can be transferred", entry.name)
        peer_index = (self.active + 1) % len(self.providers)
        source_path = self.provider.join(self.location, entry.name)
        target_path = peer.join(self.locations[peer_index], entry.name)
        verb = self.transfer_label()
        self.mode = Mode.TRANSFERRING
        self.progress = TransferProgress(name=entry.name, total=entry.size)
        self.status = f"{verb}ing {entry.name}..."
        self.redraw()
        try:
            copied = await asyncio.to_thread(
                self._copy_between, self.provider, source_path, peer, target_path
            )
        finally:
            self.mode = Mode.IDLE
        logger.info(
            "%s %s -> %s (%d bytes)",
            verb,
            self.provider.describe(source_path),
            peer.describe(target_path),
            copied,
        )
        self.status = f"{verb}ed {entry.name} to {peer.describe(target_path)}"

    def _copy_between(
        self,
        source_provider: StorageProvider,
        source_path: str,
        sink_provider: StorageProvider,
        sink_path: str,
    ) -> int:
        progress = self.progress
        with source_provider.open_read(source_path) as source:
            if progress is not None and source.size is not None:
                progress.total = source.size
            with sink_provider.open_write(sink_path) as sink:
                return copy(
                    source,
                    sink,
                    progress.update if progress is not None else None,
                )

    async def request_delete(self) -> None:
        entry = self.selected_entry()
        if entry is None:
            return
        if entry.kind is not EntryKind.FILE:
            raise UnsupportedError("Only files can be deleted", entry.name)
        self._pending_delete = entry.name
        self.mode = Mode.CONFIRMING_DELETE
        self.status = f"Delete {entry.name}? (y/n)"

    async def _delete_pending(self) -> None:
        name = self._pending_delete
        self._pending_delete = None
        self.mode = Mode.IDLE
        if name is None:
            return
        await asyncio.to_thread(
            self.provider.delete, self.provider.join(self.location, name)
        )
        await self._load(self.location)
        self.status = f"Deleted {name}"
