#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shared.config import ClientConfig, load_config
from shared.errors import ConfigError, ReconnectExhausted
from shared.log import configure_root_logging, get_logger
from .chat_client import ChatClient
from .observer import StatusUpdate, UpdateKind
from .state import ConnectionState, Direction

app = typer.Typer(help="Reconnecting WebSocket chat client")
console = Console()
logger = get_logger(__name__)

_STATE_STYLE = {
    ConnectionState.DISCONNECTED: "red",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.CONNECTED: "green",
}

HELP_TEXT = "/status, /log, /clear, /connect, /reconnect, /disconnect, /quit"


def _clock(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000).strftime("%H:%M:%S")


def _resolve(config: Optional[Path], **overrides) -> ClientConfig:
    try:
        return load_config(config, **overrides)
    except ConfigError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(code=2)


def render_update(update: StatusUpdate) -> None:
    """Print one status update to the terminal."""
    if update.kind is UpdateKind.STATE:
        style = _STATE_STYLE[update.value]
        console.print(f"[{style}]● {update.value.value}[/]")
    elif update.kind is UpdateKind.MESSAGE:
        msg = update.value
        if msg.direction is Direction.INBOUND:
            console.print(f"[dim]{_clock(msg.ts)}[/] [bold cyan]<<[/] {escape(msg.payload)}", highlight=False)
        else:
            console.print(f"[dim]{_clock(msg.ts)}[/] [bold yellow]>>[/] {escape(msg.payload)}", highlight=False)
    elif update.kind is UpdateKind.CLEARED:
        console.print("[dim]history cleared[/]")
    elif update.kind is UpdateKind.ERROR and isinstance(update.value, ReconnectExhausted):
        console.print("[red]Gave up reconnecting.[/] Type /reconnect to try again.")


def _print_log(client: ChatClient) -> None:
    table = Table(title="Event log")
    table.add_column("Time")
    table.add_column("Entry")
    for entry in client.log_entries:
        table.add_row(_clock(entry.ts), escape(entry.text))
    console.print(table)


def _print_status(client: ChatClient) -> None:
    manager = client.manager
    console.print(
        f"{client.config.url}: [{_STATE_STYLE[client.state]}]{client.state.value}[/] "
        f"(attempt {manager.attempt}/{manager.policy.max_attempts}"
        f"{', reconnect pending' if manager.reconnect_pending else ''}), "
        f"{len(client.messages)} messages"
    )


async def send_line(client: ChatClient, line: str) -> bool:
    """Send one typed line and tell the user why it was dropped, if it was."""
    if await client.send(line):
        return True
    if client.state is not ConnectionState.CONNECTED:
        console.print("[red]Not connected.[/] Message dropped.")
    else:
        console.print("[red]Send failed.[/] Message dropped, see /log.")
    return False


async def interactive_loop(client: ChatClient) -> None:
    client.on(UpdateKind.STATE, render_update)
    client.on(UpdateKind.MESSAGE, render_update)
    client.on(UpdateKind.CLEARED, render_update)
    client.on(UpdateKind.ERROR, render_update)

    client.start()
    try:
        while True:
            try:
                line = await ainput(": ")
            except EOFError:
                break
            command = line.strip()
            if command in {"/quit", "/exit"}:
                break
            if command == "/help":
                console.print(HELP_TEXT)
            elif command == "/status":
                _print_status(client)
            elif command == "/log":
                _print_log(client)
            elif command == "/clear":
                client.clear()
            elif command == "/connect":
                client.connect()
            elif command == "/reconnect":
                client.manual_reconnect()
            elif command == "/disconnect":
                await client.disconnect()
            elif command.startswith("/"):
                console.print(f"Unknown command. Try {HELP_TEXT}")
            elif command:
                await send_line(client, line)
    finally:
        await client.stop()


@app.command()
def run(
    url: Optional[str] = typer.Option(None, help="WebSocket URL of the chat server"),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
    max_attempts: Optional[int] = typer.Option(None, help="Automatic reconnection attempts"),
    delay: Optional[float] = typer.Option(None, help="Seconds between reconnection attempts"),
    timeout: Optional[float] = typer.Option(None, help="Seconds allowed for each connect attempt"),
):
    """Start the interactive chat loop."""
    cfg = _resolve(config, url=url, max_attempts=max_attempts, reconnect_delay=delay, connect_timeout=timeout)
    console.print(f"[bold green]Chat client starting[/] on {cfg.url}")
    asyncio.run(interactive_loop(ChatClient(cfg)))


@app.command("show-config")
def show_config(
    url: Optional[str] = typer.Option(None, help="WebSocket URL of the chat server"),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
):
    """Print the resolved configuration and exit."""
    cfg = _resolve(config, url=url)
    table = Table(title="Client configuration")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in cfg.to_dict().items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


def main() -> None:
    configure_root_logging(os.getenv("CHAT_LOG_LEVEL", "WARNING"))
    app()


if __name__ == "__main__":
    main()
