import asyncio
import socket

import pytest
import websockets

from client.chat_client import ChatClient
from client.observer import UpdateKind
from client.state import ConnectionState, Direction
from shared.config import ClientConfig
from shared.errors import ConfigError


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def server_port(server) -> int:
    return next(iter(server.sockets)).getsockname()[1]


async def echo(ws) -> None:
    async for message in ws:
        await ws.send(message)


def test_config_error_aborts_before_any_connect(opener):
    with pytest.raises(ConfigError):
        ChatClient(ClientConfig(url=""), opener=opener)
    assert opener.calls == 0


@pytest.mark.asyncio
async def test_start_and_stop_drive_the_manager(opener, wait_until):
    client = ChatClient(ClientConfig(url="ws://chat.test:8765", reconnect_delay=0.01), opener=opener)
    states = []
    client.on(UpdateKind.STATE, lambda u: states.append(u.value))

    client.start()
    assert await wait_until(lambda: client.state is ConnectionState.CONNECTED)
    await client.stop()

    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.DISCONNECTED]
    assert opener.latest.closed is True


@pytest.mark.asyncio
async def test_clear_after_send_keeps_connection(opener, wait_until):
    client = ChatClient(ClientConfig(url="ws://chat.test:8765"), opener=opener)
    client.start()
    assert await wait_until(lambda: client.state is ConnectionState.CONNECTED)

    assert await client.send("hello")
    assert [(m.direction, m.payload) for m in client.messages] == [(Direction.OUTBOUND, "hello")]
    client.clear()

    assert client.messages == ()
    assert client.state is ConnectionState.CONNECTED
    await client.stop()


@pytest.mark.asyncio
async def test_round_trip_against_echo_server(wait_until):
    async with websockets.serve(echo, "127.0.0.1", 0) as server:
        client = ChatClient(ClientConfig(url=f"ws://127.0.0.1:{server_port(server)}"))
        client.start()
        assert await wait_until(lambda: client.state is ConnectionState.CONNECTED)

        assert await client.send("hello") is True
        assert await wait_until(lambda: len(client.messages) == 2)

        assert [(m.direction, m.payload) for m in client.messages] == [
            (Direction.OUTBOUND, "hello"),
            (Direction.INBOUND, "hello"),
        ]
        await client.stop()

    assert client.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnects_after_server_closes_connection(wait_until):
    connections = []

    async def close_first(ws):
        connections.append(ws)
        if len(connections) == 1:
            await ws.close(code=1001, reason="going away")
            return
        await echo(ws)

    async with websockets.serve(close_first, "127.0.0.1", 0) as server:
        client = ChatClient(ClientConfig(url=f"ws://127.0.0.1:{server_port(server)}", reconnect_delay=0.05))
        client.start()
        assert await wait_until(lambda: len(connections) == 2 and client.state is ConnectionState.CONNECTED)

        assert client.manager.attempt == 1
        texts = [e.text for e in client.log_entries]
        assert any(t.startswith("Reconnecting in 0.05s (attempt 1/3)") for t in texts)
        await client.stop()


@pytest.mark.asyncio
async def test_unreachable_server_exhausts_retries(wait_until):
    url = f"ws://127.0.0.1:{free_port()}"
    client = ChatClient(ClientConfig(url=url, max_attempts=1, reconnect_delay=0.01, connect_timeout=2.0))
    exhausted = []
    client.on(UpdateKind.ERROR, lambda u: exhausted.append(u.value) if "failed to reconnect" in str(u.value) else None)

    client.start()
    assert await wait_until(lambda: bool(exhausted), timeout=5.0)

    assert client.state is ConnectionState.DISCONNECTED
    assert client.log_entries[-1].text.startswith("Failed to reconnect after 1 attempts")
    await client.stop()
    await asyncio.sleep(0.05)
    assert not client.manager.reconnect_pending
