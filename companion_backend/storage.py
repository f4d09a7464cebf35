"""Key-value backends for persisted participant records.

Every backend speaks the same three operations so the session manager never
knows where its records live:

- read(key) -> str | None   (None when missing or expired)
- write(key, value, ttl)    (replaces any existing entry, expiry = now + ttl)
- remove(key)               (idempotent)
"""
from __future__ import annotations

import json
import math
import re
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol
from urllib.parse import quote, unquote

from .logger import get_logger
from .security import cookie_policy


logger = get_logger(__name__)

Clock = Callable[[], float]

_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


class KeyValueStore(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str, ttl: timedelta) -> None: ...

    def remove(self, key: str) -> None: ...


def ttl_seconds(ttl: timedelta) -> int:
    """Convert a TTL to whole seconds, the granularity cookies and files use."""
    return max(0, int(math.ceil(ttl.total_seconds())))


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_RE.match(key):
        raise ValueError("Invalid storage key")
    return key


class MemoryStore:
    """In-process store; entries vanish once their TTL elapses."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def read(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def write(self, key: str, value: str, ttl: timedelta) -> None:
        self._entries[_check_key(key)] = (value, self._clock() + ttl_seconds(ttl))

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class FileStore:
    """One JSON file per key under a root directory.

    Each file holds {"value": ..., "expires_at": epoch}. Expired files are
    treated as missing on read and deleted by cleanup_expired().
    """

    def __init__(self, root: Path, clock: Clock = time.time) -> None:
        self.root = Path(root).resolve()
        self._clock = clock
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / f"{_check_key(key)}.json"

    def _load(self, path: Path) -> Optional[dict]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable store entry %s: %s", path.name, e)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("value"), str):
            return None
        return data

    def read(self, key: str) -> Optional[str]:
        data = self._load(self._path(key))
        if data is None:
            return None
        if self._clock() >= float(data.get("expires_at", 0)):
            return None
        return data["value"]

    def write(self, key: str, value: str, ttl: timedelta) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        entry = {"value": value, "expires_at": self._clock() + ttl_seconds(ttl)}
        self._path(key).write_text(json.dumps(entry, sort_keys=True), encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def cleanup_expired(self) -> int:
        """Delete expired or unreadable entries. Returns the number deleted."""
        deleted = 0
        if not self.root.exists():
            return 0
        now = self._clock()
        for child in self.root.glob("*.json"):
            data = self._load(child)
            if data is None or now >= float(data.get("expires_at", 0)):
                child.unlink(missing_ok=True)
                deleted += 1
        return deleted


class CookieStore:
    """Browser cookies for one request/response exchange.

    Reads come from the incoming request cookies; writes and removals are
    emitted on the outgoing response. Writes made during the exchange are
    visible to later reads in the same exchange. Values are percent-encoded
    so JSON survives cookie quoting rules.
    """

    def __init__(self, request_cookies: Mapping[str, str], response, *, secure: bool = False) -> None:
        self._incoming = dict(request_cookies)
        self._response = response
        self._policy = cookie_policy(secure)

    def read(self, key: str) -> Optional[str]:
        raw = self._incoming.get(key)
        return None if raw is None else unquote(raw)

    def write(self, key: str, value: str, ttl: timedelta) -> None:
        max_age = ttl_seconds(ttl)
        encoded = quote(value, safe="")
        self._response.set_cookie(_check_key(key), encoded, max_age=max_age, expires=max_age, **self._policy)
        self._incoming[key] = encoded

    def remove(self, key: str) -> None:
        self._response.delete_cookie(
            key,
            path=self._policy["path"],
            secure=self._policy["secure"],
            httponly=self._policy["httponly"],
            samesite=self._policy["samesite"],
        )
        self._incoming.pop(key, None)
