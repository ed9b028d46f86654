"""In-memory log entry collection fed by ingestion.

Two modes, as the import flow uses them:
  - append:  live entries trickling in from the stream
  - replace: a bulk import that swaps the whole collection

Bulk arrivals (a replace, or an append of at least bulk_threshold entries)
notify listeners so the scheduler can run an out-of-band tick instead of
waiting for the timer.  Readers always get a tuple snapshot.
"""

import logging
import threading
from typing import Callable, Iterable

from detector.models import LogEntry

logger = logging.getLogger(__name__)

APPEND = "append"
REPLACE = "replace"


class LogStore:

    def __init__(self, max_entries: int | None = None, bulk_threshold: int = 100):
        self.max_entries = max_entries
        self.bulk_threshold = bulk_threshold
        self._entries: list[LogEntry] = []
        self._lock = threading.Lock()
        self._listeners: list[Callable[[], object]] = []

    def subscribe(self, listener: Callable[[], object]) -> Callable[[], None]:
        """Register a bulk-arrival callback. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def add(self, entries: Iterable[LogEntry], mode: str = APPEND) -> int:
        if mode not in (APPEND, REPLACE):
            raise ValueError(f"mode must be 'append' or 'replace', got {mode!r}")
        batch = list(entries)
        with self._lock:
            if mode == REPLACE:
                self._entries = batch
            else:
                self._entries.extend(batch)
            if self.max_entries is not None and len(self._entries) > self.max_entries:
                del self._entries[:len(self._entries) - self.max_entries]
            size = len(self._entries)

        if mode == REPLACE or len(batch) >= self.bulk_threshold:
            logger.info("bulk %s of %d entries", mode, len(batch))
            self._notify()
        return size

    def append(self, entries: Iterable[LogEntry]) -> int:
        return self.add(entries, APPEND)

    def replace(self, entries: Iterable[LogEntry]) -> int:
        return self.add(entries, REPLACE)

    def snapshot(self) -> tuple[LogEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries = []

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("bulk-arrival listener failed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
