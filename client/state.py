from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from shared.utils import now_ms


class ConnectionState(str, Enum):
    """Connection lifecycle states exposed to observers."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass(frozen=True)
class Message:
    payload: str
    direction: Direction
    ts: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class LogEntry:
    text: str
    ts: int = field(default_factory=now_ms)


@dataclass
class ReconnectPolicy:
    """
    Bounded, fixed-delay reconnection rule.

    ``attempt`` counts automatic tries since the last manual connect and never
    exceeds ``max_attempts``.
    """
    max_attempts: int = 3
    delay: float = 1.0
    attempt: int = 0

    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts

    def next_attempt(self) -> int:
        if not self.can_retry():
            raise ValueError(f"attempt {self.attempt} already at bound {self.max_attempts}")
        self.attempt += 1
        return self.attempt

    def reset(self) -> None:
        self.attempt = 0

    @property
    def exhausted(self) -> bool:
        return not self.can_retry()
