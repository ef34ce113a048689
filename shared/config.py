"""
Client configuration.

The only required value is the WebSocket endpoint URL. Everything else has a
default and may be overridden by a YAML file, the environment or the CLI.

Precedence, lowest first:
    defaults < YAML file < CHAT_SERVER env var (url only) < explicit overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from shared.errors import ConfigError
from shared.log import get_logger
from shared.utils import is_ws_url

logger = get_logger(__name__)

ENV_SERVER_URL = "CHAT_SERVER"


@dataclass(frozen=True)
class ClientConfig:
    url: str
    max_attempts: int = 3
    reconnect_delay: float = 1.0        # seconds between automatic attempts
    connect_timeout: Optional[float] = 10.0
    max_log_entries: Optional[int] = None
    max_messages: Optional[int] = None

    def validate(self) -> "ClientConfig":
        """Return self if every setting is usable, raise ConfigError otherwise."""
        if not isinstance(self.url, str) or not self.url.strip():
            raise ConfigError(f"Server URL is required (set {ENV_SERVER_URL} or pass --url)")
        if not is_ws_url(self.url):
            raise ConfigError(f"Invalid server URL {self.url!r}: expected ws:// or wss://")
        if not isinstance(self.max_attempts, int) or self.max_attempts < 0:
            raise ConfigError(f"max_attempts must be a non-negative integer, got {self.max_attempts!r}")
        if not isinstance(self.reconnect_delay, (int, float)) or self.reconnect_delay < 0:
            raise ConfigError(f"reconnect_delay must be >= 0, got {self.reconnect_delay!r}")
        if self.connect_timeout is not None and (
            not isinstance(self.connect_timeout, (int, float)) or self.connect_timeout <= 0
        ):
            raise ConfigError(f"connect_timeout must be > 0 or unset, got {self.connect_timeout!r}")
        for name in ("max_log_entries", "max_messages"):
            bound = getattr(self, name)
            if bound is not None and (not isinstance(bound, int) or bound <= 0):
                raise ConfigError(f"{name} must be a positive integer or unset, got {bound!r}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_KNOWN_KEYS = {f.name for f in fields(ClientConfig)}


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, sorted(unknown))
    return {k: v for k, v in data.items() if k in _KNOWN_KEYS}


def load_config(path: Optional[Path] = None, **overrides: Any) -> ClientConfig:
    """
    Resolve and validate the client configuration.

    Args:
        path: Optional YAML file with any of the ClientConfig fields
        **overrides: Explicit values (e.g. from the CLI); None means "not given"

    Returns:
        A validated ClientConfig

    Raises:
        ConfigError: if the URL is missing/invalid or a setting is out of range
    """
    unknown = set(overrides) - _KNOWN_KEYS
    if unknown:
        raise ConfigError(f"Unknown config settings: {sorted(unknown)}")

    values: Dict[str, Any] = {}
    if path is not None:
        values.update(_read_yaml(Path(path).expanduser()))

    env_url = os.getenv(ENV_SERVER_URL)
    if env_url:
        values["url"] = env_url

    values.update({k: v for k, v in overrides.items() if v is not None})

    config = ClientConfig(url=values.pop("url", ""))
    config = replace(config, **values)
    logger.debug("Resolved client config: %s", config.to_dict())
    return config.validate()
