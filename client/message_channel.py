from __future__ import annotations

from collections import deque
from typing import Deque, Optional, Tuple

from shared.errors import SendWhileDisconnected, TransportError
from shared.log import get_logger

from .connection_manager import ConnectionManager
from .observer import UpdateKind
from .state import ConnectionState, Direction, Message
from .transport import Frame

logger = get_logger(__name__)

NOT_CONNECTED = "Error: not connected to server."


class MessageChannel:
    """
    Ordered inbound/outbound message history for one chat session.

    Outbound sends are gated on the manager being CONNECTED; nothing is queued
    while disconnected. Inbound payloads are stored exactly as received.
    """

    def __init__(self, manager: ConnectionManager, max_messages: Optional[int] = None) -> None:
        self.manager = manager
        self.max_messages = max_messages
        self._messages: Deque[Message] = deque(maxlen=max_messages)
        manager.on_frame = self.receive

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    async def send(self, payload: str) -> bool:
        """
        Send one line to the server.

        Returns True if the payload reached the transport and was recorded.
        Blank payloads are ignored silently.
        """
        if not payload.strip():
            return False

        if self.manager.state is not ConnectionState.CONNECTED:
            self.manager.log.append(NOT_CONNECTED)
            self.manager.observer.publish(UpdateKind.ERROR, SendWhileDisconnected(NOT_CONNECTED))
            return False

        try:
            await self.manager.transmit(payload)
        except TransportError as e:
            logger.warning("Outbound message dropped: %s", e)
            self.manager.log.append(f"Error: {e}")
            self.manager.observer.publish(UpdateKind.ERROR, e)
            return False

        self._append(Message(payload, Direction.OUTBOUND))
        return True

    def receive(self, frame: Frame) -> Optional[Message]:
        """
        Record one inbound frame. Text frames are kept byte-for-byte.

        Binary frames must be valid UTF-8; anything else is reported as a
        transport error and dropped rather than recorded altered.
        """
        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as e:
                self.manager.report_error(TransportError(f"dropped undecodable frame: {e}"))
                return None
        return self._append(Message(frame, Direction.INBOUND))

    def clear(self) -> None:
        """Drop the whole history. Connection state and the event log are untouched."""
        self._messages.clear()
        self.manager.observer.publish(UpdateKind.CLEARED)

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        self.manager.observer.publish(UpdateKind.MESSAGE, message)
        return message
