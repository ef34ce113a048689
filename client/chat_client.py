from __future__ import annotations

from typing import Callable, Optional, Tuple

from shared.config import ClientConfig
from shared.log import get_logger

from .connection_manager import ConnectionManager
from .event_log import EventLog
from .message_channel import MessageChannel
from .observer import StatusObserver, UpdateHandler, UpdateKind
from .state import ConnectionState, LogEntry, Message
from .transport import Opener

logger = get_logger(__name__)


class ChatClient:
    """
    Host-facing surface of the chat client.

    Wires the event log, observer, connection manager and message channel
    together from one validated ClientConfig. ``start()`` connects,
    ``stop()`` disconnects and cancels any pending reconnect.
    """

    def __init__(self, config: ClientConfig, *, opener: Optional[Opener] = None) -> None:
        self.config = config.validate()
        self.observer = StatusObserver()
        self.log = EventLog(self.observer, max_entries=config.max_log_entries)
        self.manager = ConnectionManager(
            config.url,
            max_attempts=config.max_attempts,
            reconnect_delay=config.reconnect_delay,
            connect_timeout=config.connect_timeout,
            log=self.log,
            observer=self.observer,
            opener=opener,
        )
        self.channel = MessageChannel(self.manager, max_messages=config.max_messages)

    # lifecycle

    def start(self) -> None:
        logger.info("Starting chat client", extra={"url": self.config.url})
        self.manager.connect()

    async def stop(self) -> None:
        logger.info("Stopping chat client", extra={"url": self.config.url})
        await self.manager.disconnect()

    # operations

    def connect(self) -> None:
        self.manager.connect()

    def manual_reconnect(self) -> None:
        self.manager.manual_reconnect()

    async def disconnect(self) -> None:
        await self.manager.disconnect()

    async def send(self, text: str) -> bool:
        return await self.channel.send(text)

    def clear(self) -> None:
        self.channel.clear()

    # read-only views

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.channel.messages

    @property
    def log_entries(self) -> Tuple[LogEntry, ...]:
        return self.log.entries

    def subscribe(self, handler: UpdateHandler, kind: Optional[UpdateKind] = None) -> Callable[[], None]:
        return self.observer.subscribe(handler, kind)

    def on(self, kind: UpdateKind, handler: UpdateHandler) -> None:
        self.observer.on(kind, handler)
