from __future__ import annotations

from typing import Optional


class ChatClientError(Exception):
    """Base class for every failure the chat client reports."""
    pass


class ConfigError(ChatClientError):
    """Raised when the endpoint URL or a client setting is missing or invalid."""
    pass


class TransportError(ChatClientError):
    """Low-level transport fault. Logged only, the close event drives recovery."""
    pass


class ConnectionLost(ChatClientError):
    """The transport closed while connected or connecting."""

    def __init__(self, code: Optional[int] = None, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        detail = f"connection closed (code {code})" if code is not None else "connection closed"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)


class ReconnectExhausted(ChatClientError):
    """Automatic reconnection gave up; only a manual reconnect resumes."""

    def __init__(self, max_attempts: int) -> None:
        self.max_attempts = max_attempts
        super().__init__(f"failed to reconnect after {max_attempts} attempts")


class SendWhileDisconnected(ChatClientError):
    """An outbound message was dropped because the client was not connected."""
    pass
