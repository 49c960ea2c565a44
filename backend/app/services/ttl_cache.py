import time
from typing import Any, Callable


class TTLCache:
    """Timestamped key/value store; entries older than ``ttl_seconds`` read as missing."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str):
        hit = self._entries.get(key)
        if not hit:
            return None
        stored_at, value = hit
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def stored_at(self, key: str) -> float | None:
        hit = self._entries.get(key)
        return hit[0] if hit else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
