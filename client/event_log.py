from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Optional, Tuple

from shared.log import get_logger

from .observer import StatusObserver, UpdateKind
from .state import LogEntry

logger = get_logger(__name__)


class EventLog:
    """
    Append-only diagnostic trail shown to the user.

    Unbounded unless ``max_entries`` is given, in which case the oldest entries
    are dropped first. Each entry is also written to the process log.
    """

    def __init__(self, observer: Optional[StatusObserver] = None, max_entries: Optional[int] = None) -> None:
        self.observer = observer
        self.max_entries = max_entries
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)

    def append(self, text: str) -> LogEntry:
        entry = LogEntry(text)
        self._entries.append(entry)
        logger.info(text)
        if self.observer is not None:
            self.observer.publish(UpdateKind.LOG, entry)
        return entry

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def texts(self) -> Tuple[str, ...]:
        return tuple(e.text for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries)
