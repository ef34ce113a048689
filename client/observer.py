from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from shared.log import get_logger

logger = get_logger(__name__)


class UpdateKind(str, Enum):
    STATE = "state"        # value: ConnectionState
    MESSAGE = "message"    # value: Message
    LOG = "log"            # value: LogEntry
    CLEARED = "cleared"    # value: None
    ERROR = "error"        # value: ChatClientError


@dataclass(frozen=True)
class StatusUpdate:
    kind: UpdateKind
    value: Any = None


UpdateHandler = Callable[[StatusUpdate], None]


class StatusObserver:
    """
    Synchronous publish surface for the presentation layer.

    Handlers run inline, in registration order, as each update is published, so
    subscribers see every state transition in the order it happened. A failing
    handler is logged and skipped.
    """

    def __init__(self) -> None:
        self.handlers: Dict[UpdateKind, List[UpdateHandler]] = {kind: [] for kind in UpdateKind}
        self.all_handlers: List[UpdateHandler] = []

    def on(self, kind: UpdateKind, handler: UpdateHandler) -> None:
        self.handlers[kind].append(handler)

    def on_all(self, handler: UpdateHandler) -> None:
        self.all_handlers.append(handler)

    def off(self, kind: Optional[UpdateKind], handler: UpdateHandler) -> None:
        """Remove a handler; ``kind=None`` removes an ``on_all`` registration."""
        bucket = self.all_handlers if kind is None else self.handlers[kind]
        if handler in bucket:
            bucket.remove(handler)

    def subscribe(self, handler: UpdateHandler, kind: Optional[UpdateKind] = None) -> Callable[[], None]:
        """Register ``handler`` and return a callable that unregisters it."""
        if kind is None:
            self.on_all(handler)
        else:
            self.on(kind, handler)
        return lambda: self.off(kind, handler)

    def publish(self, kind: UpdateKind, value: Any = None) -> None:
        update = StatusUpdate(kind, value)
        for handler in list(self.handlers[kind]) + list(self.all_handlers):
            try:
                handler(update)
            except Exception as e:
                logger.error("Status handler %r failed on %s update: %s", handler, kind.value, e)
