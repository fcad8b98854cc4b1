"""
Key/Value Store - Abstract contract for ephemeral state with TTL
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple


class KeyValueStore(ABC):
    """
    Ephemeral store used by the cache, optimistic updates, sync lock and
    print queue. Every write that needs an expiry takes its TTL (seconds)
    as an argument.

    ttl() follows the usual convention: -2 when the key does not exist,
    -1 when it exists without expiry.
    """

    # ========== Strings ==========

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Atomic set-if-not-exists; True when the key was written"""
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        pass

    @abstractmethod
    async def keys(self, prefix: str) -> List[str]:
        pass

    @abstractmethod
    async def incr(self, key: str, amount: int = 1) -> int:
        pass

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        pass

    @abstractmethod
    async def ttl(self, key: str) -> int:
        pass

    # ========== Hashes ==========

    @abstractmethod
    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        pass

    @abstractmethod
    async def hgetall(self, key: str) -> Dict[str, str]:
        pass

    # ========== Sorted sets ==========

    @abstractmethod
    async def zadd(self, key: str, member: str, score: float) -> None:
        pass

    @abstractmethod
    async def zpopmax(self, key: str) -> Optional[Tuple[str, float]]:
        """Remove and return the member with the highest score"""
        pass

    @abstractmethod
    async def zrange(self, key: str) -> List[str]:
        """All members, lowest score first"""
        pass

    @abstractmethod
    async def zrem(self, key: str, member: str) -> bool:
        pass

    @abstractmethod
    async def zcard(self, key: str) -> int:
        pass

    async def close(self) -> None:
        """Release resources held by the store"""
        return None
