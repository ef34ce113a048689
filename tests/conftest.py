import asyncio
from collections import deque
from typing import Callable, Deque, List, Optional, Union

import pytest

_CLOSED = object()
HANG = object()


class FakeWebSocket:
    """In-memory stand-in for ``websockets.ClientConnection``."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.send_error: Optional[BaseException] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    # test controls

    def push(self, frame: Union[str, bytes]) -> None:
        self._inbox.put_nowait(frame)

    def drop(self, code: int = 1006) -> None:
        """Simulate the remote end going away."""
        self.closed = True
        self.close_code = code
        self._inbox.put_nowait(_CLOSED)

    def fail(self, exc: BaseException) -> None:
        self._inbox.put_nowait(exc)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Union[str, bytes]:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeOpener:
    """
    Scriptable replacement for ``open_websocket``.

    Each call consumes the next scripted outcome (a FakeWebSocket, an exception
    or HANG); with an empty script it refuses when ``refusing`` is set and
    otherwise hands out a fresh FakeWebSocket.
    """

    def __init__(self) -> None:
        self.calls = 0
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self.script: Deque[object] = deque()
        self.refusing = False

    async def __call__(self, url: str) -> FakeWebSocket:
        self.calls += 1
        self.urls.append(url)
        outcome = self.script.popleft() if self.script else None
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None and self.refusing:
            raise ConnectionRefusedError("connection refused")
        ws = outcome if isinstance(outcome, FakeWebSocket) else FakeWebSocket()
        self.sockets.append(ws)
        return ws

    def hang_next(self) -> None:
        """The next open attempt never completes."""
        self.script.append(HANG)

    def fail_next(self, exc: BaseException) -> None:
        self.script.append(exc)

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def wait_until() -> Callable:
    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
        loop = asyncio.get_running_loop()
        end = loop.time() + timeout
        while loop.time() < end:
            if predicate():
                return True
            await asyncio.sleep(0.005)
        return predicate()

    return _wait_until


@pytest.fixture(autouse=True)
def _no_server_env(monkeypatch):
    monkeypatch.delenv("CHAT_SERVER", raising=False)
