from __future__ import annotations
import time
from urllib.parse import urlparse

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================

_WS_SCHEMES = {"ws", "wss"}


def now_ms() -> int:
    """Current unix time in milliseconds."""
    return int(time.time() * 1000)


def is_ws_url(s: str) -> bool:
    """
    Accepts 'ws://host[:port][/path]' or 'wss://...'.

    - scheme must be ws or wss
    - host must be non-empty
    - port, when given, must be an integer between 1 and 65535
    """
    try:
        parsed = urlparse(s)
        if parsed.scheme.lower() not in _WS_SCHEMES:
            return False
        if not parsed.hostname:
            return False
        port = parsed.port
        return port is None or 0 < port <= 65535
    except (AttributeError, ValueError):
        return False
