from __future__ import annotations
import asyncio
from contextlib import suppress
from typing import Callable, Optional

from websockets.exceptions import ConnectionClosedError

from shared.errors import (
    ConfigError,
    ConnectionLost,
    ReconnectExhausted,
    TransportError,
)
from shared.log import get_logger
from shared.utils import is_ws_url

from .event_log import EventLog
from .observer import StatusObserver, UpdateKind
from .state import ConnectionState, ReconnectPolicy
from .transport import TRANSPORT_FAILURES, Frame, Opener, TransportHandle, close_code_of, open_websocket

logger = get_logger(__name__)

FrameHandler = Callable[[Frame], None]


class ConnectionManager:
    """
    Owns the single transport handle and runs the connection state machine.

    States: DISCONNECTED -> CONNECTING -> CONNECTED, back to DISCONNECTED on
    close. A close from CONNECTING or CONNECTED feeds the reconnection policy,
    which either schedules another attempt after a fixed delay or settles in
    terminal DISCONNECTED until ``connect()``/``manual_reconnect()``.

    All methods must be called from the event loop thread. Every handle gets a
    generation number; events from a superseded handle are ignored.
    """

    def __init__(
        self,
        url: str,
        *,
        max_attempts: int = 3,
        reconnect_delay: float = 1.0,
        connect_timeout: Optional[float] = 10.0,
        log: Optional[EventLog] = None,
        observer: Optional[StatusObserver] = None,
        opener: Optional[Opener] = None,
    ) -> None:
        if not url or not is_ws_url(url):
            raise ConfigError(f"Invalid server URL: {url!r}")
        if max_attempts < 0:
            raise ConfigError(f"max_attempts must be >= 0, got {max_attempts}")

        self.url = url
        self.connect_timeout = connect_timeout
        self.policy = ReconnectPolicy(max_attempts=max_attempts, delay=reconnect_delay)
        self.observer = observer or StatusObserver()
        self.log = log or EventLog(self.observer)
        self.on_frame: Optional[FrameHandler] = None

        self._opener: Opener = opener or open_websocket
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._websocket: Optional[TransportHandle] = None
        self._handle_task: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None

    # ----------------------------------------
    #           READ-ONLY STATUS
    # ----------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt(self) -> int:
        return self.policy.attempt

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    # ----------------------------------------
    #           CALLER OPERATIONS
    # ----------------------------------------

    def connect(self) -> None:
        """Caller-initiated connect. Resets the attempt counter."""
        self.policy.reset()
        self._open()

    def manual_reconnect(self) -> None:
        """Recover from any state, including exhausted retries."""
        self.log.append("Manual reconnect requested.")
        self.connect()

    async def disconnect(self) -> None:
        """
        Cancel any pending reconnect, close the handle and settle in DISCONNECTED.

        Never triggers the reconnection policy.
        """
        self._cancel_reconnect()
        self._generation += 1
        websocket, task = self._websocket, self._handle_task
        self._websocket = None
        self._handle_task = None

        was_active = self._state is not ConnectionState.DISCONNECTED
        self._set_state(ConnectionState.DISCONNECTED)

        if websocket is not None:
            try:
                await websocket.close(code=1000, reason="client disconnect")
            except TRANSPORT_FAILURES as e:
                logger.error("Error closing connection: %s", e)
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        if was_active:
            self.log.append("Disconnected.")

    async def transmit(self, payload: str) -> None:
        """Forward ``payload`` unmodified to the live handle. Used by MessageChannel."""
        if self._state is not ConnectionState.CONNECTED or self._websocket is None:
            raise TransportError("no open connection")
        try:
            await self._websocket.send(payload)
        except TRANSPORT_FAILURES as e:
            raise TransportError(f"send failed: {e}") from e

    # ----------------------------------------
    #           STATE MACHINE
    # ----------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is self._state:
            return
        logger.debug("State %s -> %s", self._state.value, new_state.value,
                     extra={"url": self.url, "attempt": self.policy.attempt})
        self._state = new_state
        self.observer.publish(UpdateKind.STATE, new_state)

    def _open(self) -> None:
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug("Connect ignored: already %s", self._state.value)
            return

        self._cancel_reconnect()
        self._generation += 1
        self._set_state(ConnectionState.CONNECTING)
        self.log.append(f"Connecting to {self.url}...")
        loop = asyncio.get_running_loop()
        self._handle_task = loop.create_task(self._run_handle(self._generation))
        self._track_handle_task(self._handle_task, self._generation)

    def _track_handle_task(self, task: asyncio.Task, generation: int) -> None:
        """Route a crash of the handle task into the error and close path."""

        def _done(_task: asyncio.Task) -> None:
            if _task.cancelled() or _task.exception() is None:
                return
            exc = _task.exception()
            logger.error("Connection task failed: %r", exc, exc_info=exc, extra={"url": self.url})
            if generation != self._generation or self._state is ConnectionState.DISCONNECTED:
                return
            websocket = self._websocket
            if websocket is not None:
                self._track_background_close(websocket)
            self.report_error(TransportError(f"unexpected failure: {exc}"))
            self._on_close(generation, ConnectionLost(reason=str(exc)))

        task.add_done_callback(_done)

    def _track_background_close(self, websocket: TransportHandle) -> None:
        async def _close() -> None:
            try:
                await websocket.close()
            except TRANSPORT_FAILURES as e:
                logger.error("Error closing connection: %s", e)

        asyncio.get_running_loop().create_task(_close())

    async def _run_handle(self, generation: int) -> None:
        """Open one handle and pump its events until it closes."""
        try:
            websocket = await asyncio.wait_for(self._opener(self.url), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            if generation == self._generation:
                self.report_error(TransportError(f"connect timed out after {self.connect_timeout}s"))
                self._on_close(generation, ConnectionLost(reason="connect timed out"))
            return
        except TRANSPORT_FAILURES as e:
            if generation == self._generation:
                self.report_error(TransportError(f"could not connect: {e}"))
                self._on_close(generation, ConnectionLost(reason=str(e)))
            return

        if generation != self._generation:
            # Superseded while the handshake was in flight
            with suppress(*TRANSPORT_FAILURES):
                await websocket.close()
            return

        self._websocket = websocket
        self._on_open()

        try:
            async for frame in websocket:
                if generation != self._generation:
                    break
                if self.on_frame is not None:
                    self.on_frame(frame)
        except ConnectionClosedError as e:
            logger.info("Connection closed abnormally: %s", e, extra={"url": self.url})
        except TRANSPORT_FAILURES as e:
            if generation == self._generation:
                self.report_error(TransportError(str(e)))

        code = close_code_of(websocket)
        reason = getattr(websocket, "close_reason", None) or ""
        self._on_close(generation, ConnectionLost(code, reason))

    def _on_open(self) -> None:
        self._set_state(ConnectionState.CONNECTED)
        self.log.append("Connected.")

    def report_error(self, error: TransportError) -> None:
        """Log a transport fault. Does not change state; the close event does."""
        logger.warning("Transport error: %s", error, extra={"url": self.url})
        self.log.append(f"Error: {error}")
        self.observer.publish(UpdateKind.ERROR, error)

    def _superseded(self, generation: int) -> bool:
        return generation != self._generation or self._state is not ConnectionState.DISCONNECTED

    def _on_close(self, generation: int, lost: ConnectionLost) -> None:
        if generation != self._generation or self._state is ConnectionState.DISCONNECTED:
            return

        self._websocket = None
        self._handle_task = None
        # Subscribers run inline and may connect() or disconnect() from here
        self._set_state(ConnectionState.DISCONNECTED)
        if self._superseded(generation):
            return
        self.log.append(f"Disconnected: {lost}.")
        self.observer.publish(UpdateKind.ERROR, lost)
        if self._superseded(generation):
            return

        if self.policy.can_retry():
            attempt = self.policy.next_attempt()
            delay = self.policy.delay
            self.log.append(f"Reconnecting in {delay:g}s (attempt {attempt}/{self.policy.max_attempts})...")
            loop = asyncio.get_running_loop()
            self._reconnect_timer = loop.call_later(delay, self._on_reconnect_timer, self._generation)
        else:
            exhausted = ReconnectExhausted(self.policy.max_attempts)
            logger.error("%s", exhausted, extra={"url": self.url})
            self.log.append(
                f"Failed to reconnect after {self.policy.max_attempts} attempts. "
                "Use manual reconnect to try again."
            )
            self.observer.publish(UpdateKind.ERROR, exhausted)

    def _on_reconnect_timer(self, generation: int) -> None:
        self._reconnect_timer = None
        if generation != self._generation:
            return
        self._open()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
