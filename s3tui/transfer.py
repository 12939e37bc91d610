from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Protocol

from .errors import TransientError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
MAX_TRANSIENT_RETRIES = 5


class ByteStream:
    """Lazy, forward-only sequence of byte chunks.

    The stream is single pass: once iterated it stays exhausted. ``size`` is
    the length known when the stream was opened and only serves as a
    progress hint.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        size: Optional[int] = None,
        close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._chunks = iter(chunks)
        self.size = size
        self._close = close
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        return next(self._chunks)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._close is not None:
            self._close()

    def __enter__(self) -> ByteStream:
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


class ByteSink(Protocol):
    def write(self, chunk: bytes) -> Optional[int]: ...

    def close(self) -> None: ...

    def __enter__(self) -> ByteSink: ...

    def __exit__(self, exc_type, exc, tb) -> None: ...


@dataclass
class TransferProgress:
    name: str
    total: Optional[int] = None
    done: int = 0
    revision: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def update(self, done: int) -> None:
        with self._lock:
            self.done = done
            self.revision += 1

    @property
    def fraction(self) -> Optional[float]:
        if not self.total:
            return None
        return min(1.0, self.done / self.total)


def _write_chunk(sink: ByteSink, chunk: bytes) -> None:
    view = memoryview(chunk)
    retries = 0
    while view:
        try:
            written = sink.write(view)
        except (TransientError, InterruptedError) as exc:
            retries += 1
            if retries > MAX_TRANSIENT_RETRIES:
                if isinstance(exc, TransientError):
                    raise
                raise TransientError("Interrupted write") from exc
            logger.debug("Retrying interrupted write (%d): %s", retries, exc)
            continue
        if written is None:
            written = len(view)
        if written <= 0:
            retries += 1
            if retries > MAX_TRANSIENT_RETRIES:
                raise TransientError("Destination accepted no bytes")
            logger.debug("Retrying stalled write (%d)", retries)
            continue
        view = view[written:]


def copy(
    source: Iterable[bytes],
    sink: ByteSink,
    progress: Optional[Callable[[int], None]] = None,
) -> int:
    """Stream every chunk of ``source`` into ``sink`` in order.

    Returns the number of bytes copied once the source is exhausted. Closing
    either side, and cleaning up a partially written destination, is left to
    the caller.
    """
    total = 0
    for chunk in source:
        if not chunk:
            continue
        _write_chunk(sink, chunk)
        total += len(chunk)
        if progress is not None:
            progress(total)
    return total
