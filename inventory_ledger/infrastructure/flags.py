"""
Feature flag sources

Flags are resolved on every lookup; nothing is cached, so a flag flipped by an
operator takes effect on the very next call. A lookup that cannot be answered
falls back to the caller's default.
"""

import threading
from typing import Any, Dict, Optional, Protocol

import redis

from inventory_ledger.core import get_logger

logger = get_logger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class FlagSource(Protocol):
    def get_bool(self, name: str, default: bool) -> bool: ...

    def get_int(self, name: str, default: int) -> int: ...


def parse_bool(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def parse_int(raw: Any, default: int) -> int:
    if raw is None or isinstance(raw, bool):
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


class RedisFlagSource:
    """Flags stored as plain string keys, e.g. ``SET flags:inventoryHighCpu true``"""

    def __init__(self, client: redis.Redis, prefix: str = "flags:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "flags:") -> "RedisFlagSource":
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=1, socket_timeout=1)
        return cls(client, prefix)

    def _lookup(self, name: str) -> Optional[str]:
        try:
            return self._client.get(f"{self._prefix}{name}")
        except redis.RedisError as e:
            logger.warning(
                f"Flag lookup failed for {name}, using default: {e}",
                extra={'extra_fields': {'flag': name}},
            )
            return None

    def get_bool(self, name: str, default: bool) -> bool:
        return parse_bool(self._lookup(name), default)

    def get_int(self, name: str, default: int) -> int:
        return parse_int(self._lookup(name), default)

    def ping(self) -> bool:
        return bool(self._client.ping())


class StaticFlagSource:
    """In-process flags for local runs and tests; mutable at runtime"""

    def __init__(self, flags: Optional[Dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._flags: Dict[str, Any] = dict(flags or {})

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._flags[name] = value

    def clear(self) -> None:
        with self._lock:
            self._flags.clear()

    def get_bool(self, name: str, default: bool) -> bool:
        with self._lock:
            raw = self._flags.get(name)
        return parse_bool(raw, default)

    def get_int(self, name: str, default: int) -> int:
        with self._lock:
            raw = self._flags.get(name)
        return parse_int(raw, default)

    def ping(self) -> bool:
        return True
