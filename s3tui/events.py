from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from time import monotonic
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)

TICK_RATE_SECONDS = 0.2
EXIT_KEYS = frozenset({"escape"})


class EventKind(Enum):
    INPUT = "input"
    TICK = "tick"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    key: Optional[str] = None


TICK = Event(EventKind.TICK)
SHUTDOWN = Event(EventKind.SHUTDOWN)


def key_event(key: str) -> Event:
    return Event(EventKind.INPUT, key)


class EventChannel:
    """FIFO between one producer thread and the browser loop.

    Sending never blocks and is best effort: after the consumer has closed
    the channel, events are dropped and ``send`` returns False.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Event] = queue.SimpleQueue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, event: Event) -> bool:
        if self._closed.is_set():
            return False
        self._queue.put(event)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        if self._closed.is_set():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()


class KeySource(Protocol):
    def poll(self, timeout: float) -> Optional[str]:
        """Wait up to ``timeout`` seconds for a key name."""


class QueueKeySource:
    """Key source fed by the terminal front end."""

    def __init__(self) -> None:
        self._keys: queue.SimpleQueue[str] = queue.SimpleQueue()

    def push(self, key: str) -> None:
        self._keys.put(key)

    def poll(self, timeout: float) -> Optional[str]:
        try:
            return self._keys.get(timeout=max(0.0, timeout))
        except queue.Empty:
            return None


class EventMultiplexer:
    """Background thread turning key presses and elapsed time into events."""

    def __init__(
        self,
        keys: KeySource,
        channel: Optional[EventChannel] = None,
        tick_rate: float = TICK_RATE_SECONDS,
        exit_keys: Iterable[str] = EXIT_KEYS,
    ) -> None:
        self.keys = keys
        self.channel = channel or EventChannel()
        self.tick_rate = tick_rate
        self.exit_keys = frozenset(exit_keys)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> EventChannel:
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._run, name="s3tui-events", daemon=True
            )
            self._thread.start()
        return self.channel

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def classify(self, key: str) -> Event:
        if key in self.exit_keys:
            return SHUTDOWN
        return key_event(key)

    def _run(self) -> None:
        last_tick = monotonic()
        while not self._stop.is_set():
            timeout = max(0.0, self.tick_rate - (monotonic() - last_tick))
            key = self.keys.poll(timeout)
            if key is not None:
                event = self.classify(key)
                self.channel.send(event)
                if event.kind is EventKind.SHUTDOWN:
                    break
            if monotonic() - last_tick >= self.tick_rate:
                if self.channel.send(TICK):
                    last_tick = monotonic()
                elif self.channel.closed:
                    break
        logger.debug("Event multiplexer stopped")
