from __future__ import annotations
import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, Tuple, Type, Union

import websockets
from websockets.exceptions import WebSocketException

from shared.log import get_logger

logger = get_logger(__name__)

Frame = Union[str, bytes]

# Failures that count as a transport fault rather than a bug in our code
TRANSPORT_FAILURES: Tuple[Type[BaseException], ...] = (
    OSError,
    asyncio.TimeoutError,
    WebSocketException,
)


class TransportHandle(Protocol):
    """The slice of ``websockets.ClientConnection`` the connection manager relies on."""

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[Frame]: ...


Opener = Callable[[str], Awaitable[TransportHandle]]


async def open_websocket(url: str) -> websockets.ClientConnection:
    """Open a WebSocket client connection to ``url``.

    The handshake timeout is left to the caller so every attempt shares one
    timeout policy regardless of the opener in use.
    """
    logger.debug("Opening WebSocket to %s", url)
    return await websockets.connect(url, open_timeout=None, ping_interval=15, ping_timeout=45)


def close_code_of(handle: TransportHandle) -> Optional[int]:
    """Best-effort close code of a finished handle."""
    return getattr(handle, "close_code", None)
