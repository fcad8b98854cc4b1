"""
In-process Key/Value Store
Single event loop only; every method runs without awaiting, so each call is atomic.
"""
import json
import time
from typing import Callable, Dict, List, Optional, Tuple, Any

from .base import KeyValueStore


class MemoryKeyValueStore(KeyValueStore):

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._values: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}

    def _alive(self, key: str) -> bool:
        expires_at = self._expires.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._values.pop(key, None)
            self._expires.pop(key, None)
            return False
        return key in self._values

    def _set_expiry(self, key: str, ttl: Optional[int]):
        if ttl is None:
            self._expires.pop(key, None)
        else:
            self._expires[key] = self._clock() + ttl

    # ========== Strings ==========

    async def get(self, key: str) -> Optional[str]:
        if not self._alive(key):
            return None
        value = self._values[key]
        if isinstance(value, dict):
            return json.dumps(value)
        return str(value)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._values[key] = value
        self._set_expiry(key, ttl)

    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if self._alive(key):
            return False
        await self.set(key, value, ttl)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._alive(key):
                deleted += 1
            self._values.pop(key, None)
            self._expires.pop(key, None)
            if self._zsets.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def keys(self, prefix: str) -> List[str]:
        found = [k for k in list(self._values) if k.startswith(prefix) and self._alive(k)]
        found.extend(k for k in self._zsets if k.startswith(prefix) and self._zsets[k])
        return sorted(found)

    async def incr(self, key: str, amount: int = 1) -> int:
        current = int(self._values[key]) if self._alive(key) else 0
        current += amount
        self._values[key] = str(current)
        return current

    async def expire(self, key: str, ttl: int) -> bool:
        if not self._alive(key):
            return False
        self._set_expiry(key, ttl)
        return True

    async def ttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        expires_at = self._expires.get(key)
        if expires_at is None:
            return -1
        return max(0, int(round(expires_at - self._clock())))

    # ========== Hashes ==========

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        if not self._alive(key) or not isinstance(self._values[key], dict):
            self._values[key] = {}
        bucket = self._values[key]
        bucket[field] = str(int(bucket.get(field, "0")) + amount)
        return int(bucket[field])

    async def hgetall(self, key: str) -> Dict[str, str]:
        if not self._alive(key) or not isinstance(self._values[key], dict):
            return {}
        return dict(self._values[key])

    # ========== Sorted sets ==========

    async def zadd(self, key: str, member: str, score: float) -> None:
        self._zsets.setdefault(key, {})[member] = score

    async def zpopmax(self, key: str) -> Optional[Tuple[str, float]]:
        members = self._zsets.get(key)
        if not members:
            return None
        member = max(members, key=lambda m: (members[m], m))
        return member, members.pop(member)

    async def zrange(self, key: str) -> List[str]:
        members = self._zsets.get(key, {})
        return sorted(members, key=lambda m: (members[m], m))

    async def zrem(self, key: str, member: str) -> bool:
        return self._zsets.get(key, {}).pop(member, None) is not None

    async def zcard(self, key: str) -> int:
        return len(self._zsets.get(key, {}))
