"""Reconnecting WebSocket chat client core."""

from .chat_client import ChatClient
from .connection_manager import ConnectionManager
from .event_log import EventLog
from .message_channel import MessageChannel
from .observer import StatusObserver, StatusUpdate, UpdateKind
from .state import ConnectionState, Direction, LogEntry, Message, ReconnectPolicy

__all__ = [
    "ChatClient",
    "ConnectionManager",
    "ConnectionState",
    "Direction",
    "EventLog",
    "LogEntry",
    "Message",
    "MessageChannel",
    "ReconnectPolicy",
    "StatusObserver",
    "StatusUpdate",
    "UpdateKind",
]
