"""
Write coalescing for persisted state.

Settings and the disk cache change in bursts (every toggle, every refresh).
DebouncedWriter keeps only the latest value and writes it once the burst has
been quiet for the quiet period, on a single background thread that owns the
pending slot. push() never blocks the caller.

One writer exists per persisted entity, created lazily through get_writer().
All writers are flushed at interpreter exit.
"""

from __future__ import annotations

import atexit
import queue
import threading
from typing import Callable, Dict, Generic, Optional, TypeVar

from nodeswitch.config import PERSISTENCE
from nodeswitch.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class _Sentinel:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.name}>"


_NOTHING = _Sentinel("nothing")
_CLOSE = _Sentinel("close")


class _Flush:
    def __init__(self) -> None:
        self.done = threading.Event()


class DebouncedWriter(Generic[T]):
    """
    Latest-value-wins writer with a quiet-period debounce.

    Args:
        write_fn: Called on the worker thread with the value to persist
        quiet_period: Seconds without a push before the pending value is written
        name: Used for the thread name and log messages
    """

    def __init__(
        self,
        write_fn: Callable[[T], None],
        quiet_period: float = PERSISTENCE.QUIET_PERIOD_SEC,
        name: str = "writer",
    ) -> None:
        self.write_fn = write_fn
        self.quiet_period = quiet_period
        self.name = name
        self.write_count = 0
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._worker, name=f"nodeswitch-{name}-writer", daemon=True
        )
        self._thread.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, value: T) -> None:
        """Queue ``value`` for writing. Replaces any value not yet written."""
        with self._lock:
            if self._closed:
                logger.warning(f"Dropping write to closed {self.name} writer")
                return
            self._queue.put_nowait(value)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Write any pending value now. Returns False if the worker did not respond in time."""
        with self._lock:
            if self._closed:
                return True
            request = _Flush()
            self._queue.put_nowait(request)
        return request.done.wait(timeout)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Write the final pending value and stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put_nowait(_CLOSE)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(f"{self.name} writer did not stop within {timeout}s")

    def _write(self, value: object) -> None:
        try:
            self.write_fn(value)  # type: ignore[arg-type]
            self.write_count += 1
        except Exception as e:  # noqa: generic-exception - worker must survive a failed save
            logger.error(f"Failed to save {self.name}: {e}", exc_info=True)

    def _worker(self) -> None:
        pending: object = _NOTHING
        while True:
            try:
                if pending is _NOTHING:
                    item = self._queue.get()
                else:
                    item = self._queue.get(timeout=self.quiet_period)
            except queue.Empty:
                self._write(pending)
                pending = _NOTHING
                continue

            if item is _CLOSE:
                if pending is not _NOTHING:
                    self._write(pending)
                logger.debug(f"{self.name} writer stopped after {self.write_count} writes")
                return
            if isinstance(item, _Flush):
                if pending is not _NOTHING:
                    self._write(pending)
                    pending = _NOTHING
                item.done.set()
                continue
            pending = item


_writers: Dict[str, DebouncedWriter] = {}
_writers_lock = threading.Lock()


def get_writer(
    key: str,
    write_fn: Callable[[T], None],
    quiet_period: float = PERSISTENCE.QUIET_PERIOD_SEC,
) -> DebouncedWriter[T]:
    """
    Return the process-wide writer for ``key``, creating it on first use.

    The first caller's ``write_fn`` is kept; later calls return the same writer.
    """
    with _writers_lock:
        writer = _writers.get(key)
        if writer is None or writer.closed:
            writer = DebouncedWriter(write_fn, quiet_period=quiet_period, name=key)
            _writers[key] = writer
        return writer


def shutdown_writers() -> None:
    """Flush and stop every writer (registered to run at exit)."""
    with _writers_lock:
        writers = list(_writers.values())
        _writers.clear()
    for writer in writers:
        writer.close()


atexit.register(shutdown_writers)
