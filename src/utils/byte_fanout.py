"""
Single-producer, multi-reader byte pipe.

``ByteFanout`` reads a forward-only source exactly once and hands every chunk
to each attached reader, so one download can feed two uploads without
buffering the whole payload.

Contract:
- The source is read on demand, by whichever reader runs out of data first.
  Readers never wait for each other to *start*.
- Backpressure couples the readers: a reader may not pull a new chunk while
  another attached reader has more than ``max_buffered`` bytes pending. A
  stalled reader therefore stalls the others once that buffer is full.
- Closing a reader detaches it: its pending bytes are dropped and readers
  blocked on it are released. A failing consumer must close its reader.
- A source read error is raised (as ``FanoutSourceError``) from every
  attached reader's next read.
- The source is closed once it is exhausted or every reader has detached.

Readers are blocking file-like objects meant to be consumed from worker
threads (HTTP upload payloads, boto3 transfers).
"""

from __future__ import annotations

import io
import threading

from typing import Protocol

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_BUFFERED = 8 * 1024 * 1024


class FanoutSourceError(OSError):
    """Reading the shared source failed."""


class _Source(Protocol):
    def read(self, size: int = -1, /) -> bytes: ...

    def close(self) -> None: ...


class FanoutReader(io.RawIOBase):
    """One consumer's view of a ``ByteFanout``."""

    def __init__(self, fanout: ByteFanout, index: int):
        super().__init__()
        self._fanout = fanout
        self.index = index
        self.bytes_read = 0
        self._buffer = bytearray()
        self._detached = False

    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray | memoryview) -> int:  # type: ignore[override]
        data = self._fanout._read_for(self, len(b))
        n = len(data)
        b[:n] = data
        self.bytes_read += n
        return n

    def close(self) -> None:
        if not self.closed:
            self._fanout._detach(self)
        super().close()


class ByteFanout:
    """Fan one forward-only byte source out to ``readers`` independent readers."""

    def __init__(
        self,
        source: _Source,
        readers: int = 2,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_buffered: int = DEFAULT_MAX_BUFFERED,
    ):
        if readers < 1:
            raise ValueError("ByteFanout needs at least one reader")
        self._source = source
        self._chunk_size = chunk_size
        self._max_buffered = max_buffered
        self._cond = threading.Condition()
        self._pulling = False
        self._eof = False
        self._error: BaseException | None = None
        self._source_closed = False
        self._readers = tuple(FanoutReader(self, i) for i in range(readers))

    @property
    def readers(self) -> tuple[FanoutReader, ...]:
        return self._readers

    @property
    def exhausted(self) -> bool:
        with self._cond:
            return self._eof

    def _attached(self) -> list[FanoutReader]:
        return [r for r in self._readers if not r._detached]

    def _blocked_by_lagging_reader(self, reader: FanoutReader) -> bool:
        return any(
            len(other._buffer) >= self._max_buffered for other in self._readers if other is not reader and not other._detached
        )

    def _read_for(self, reader: FanoutReader, size: int) -> bytes:
        if size <= 0:
            return b""

        while True:
            with self._cond:
                while True:
                    if reader._detached:
                        raise ValueError("I/O operation on closed reader")
                    if reader._buffer:
                        data = bytes(reader._buffer[:size])
                        del reader._buffer[:size]
                        self._cond.notify_all()
                        return data
                    if self._error is not None:
                        raise FanoutSourceError(f"shared source failed: {self._error}") from self._error
                    if self._eof:
                        return b""
                    if not self._pulling and not self._blocked_by_lagging_reader(reader):
                        self._pulling = True
                        break
                    self._cond.wait()

            # Read outside the lock so other readers can drain meanwhile
            try:
                chunk = self._source.read(self._chunk_size)
            except Exception as exc:
                with self._cond:
                    self._error = exc
                    self._pulling = False
                    self._cond.notify_all()
                self._close_source()
                continue

            with self._cond:
                self._pulling = False
                if chunk:
                    for attached in self._attached():
                        attached._buffer.extend(chunk)
                else:
                    self._eof = True
                self._cond.notify_all()

            if not chunk:
                self._close_source()

    def _detach(self, reader: FanoutReader) -> None:
        with self._cond:
            reader._detached = True
            reader._buffer.clear()
            remaining = self._attached()
            self._cond.notify_all()
        if not remaining:
            self._close_source()

    def _close_source(self) -> None:
        with self._cond:
            if self._source_closed:
                return
            self._source_closed = True
        self._source.close()
