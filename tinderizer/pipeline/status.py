from __future__ import annotations

import re
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from redis import Redis

from .models import StatusReport

WORKING = "Working..."
EXTRACTING = "Extracting..."
CONVERTING = "Converting..."
SENDING = "Sending..."
DONE = "All done! Grab your Kindle and hang tight!"

EXTRACTION_FAILED = "Sorry, extraction failed. The article could not be read."
CONVERSION_FAILED = "Sorry, conversion failed. The e-book could not be generated."
DELIVERY_FAILED = "Sorry, sending failed. The e-book could not be emailed."
CRASHED = "Sorry, something went wrong while processing your article (error)."
NO_RESULT = "Error: the job ended without a result."

SUBMITTED = "Submitted! Hang tight..."
NOT_FOUND = "No job with that ID found."

DEFAULT_TTL_SECONDS = 3600

# Polling clients stop as soon as a message contains one of these tokens.
_DONE_PATTERN = re.compile(r"done|failed|limited|invalid|error|sorry", re.IGNORECASE)


def is_done(message: str) -> bool:
    return bool(_DONE_PATTERN.search(message or ""))


class StatusCache:
    """
    Shared key -> progress message store with expiry. Any stage may write a
    job's status at any time; the HTTP layer reads it while polling.
    Writes are last-write-wins per key.
    """

    def set(self, key: str, message: str, ttl: Optional[float] = None) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryStatusCache(StatusCache):
    """
    Process-local cache guarded by a lock. Expired entries are hidden from
    readers immediately and swept from memory at most once per TTL window.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._last_sweep = clock()

    def set(self, key: str, message: str, ttl: Optional[float] = None) -> None:
        now = self._clock()
        expires_at = now + (self.ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (message, expires_at)
            if now - self._last_sweep >= self.ttl:
                self._sweep(now)

    def get(self, key: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            message, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return message

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        self._last_sweep = now


class RedisStatusCache(StatusCache):
    """
    Redis-backed cache so several API processes can answer status polls for
    the same pipeline. Expiry is delegated to Redis (`SET ... EX`).
    """

    def __init__(self, client: Redis, ttl: float = DEFAULT_TTL_SECONDS, prefix: str = "tinderizer:status:"):
        self.client = client
        self.ttl = ttl
        self.prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str, ttl: float = DEFAULT_TTL_SECONDS) -> "RedisStatusCache":
        return cls(Redis.from_url(redis_url), ttl=ttl)

    def _name(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def set(self, key: str, message: str, ttl: Optional[float] = None) -> None:
        seconds = max(1, int(self.ttl if ttl is None else ttl))
        self.client.set(self._name(key), message, ex=seconds)

    def get(self, key: str) -> Optional[str]:
        value = self.client.get(self._name(key))
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def delete(self, key: str) -> None:
        self.client.delete(self._name(key))


def lookup(cache: StatusCache, key: str) -> StatusReport:
    """
    Answer a status poll. Unknown or expired keys report done so clients
    stop polling.
    """
    message = cache.get(key) if key else None
    if message is None:
        return StatusReport(message=NOT_FOUND, done=True)
    return StatusReport(message=message, done=is_done(message))
