"""
Product Cache - Read-through cache of product snapshots keyed by barcode

Frequently scanned barcodes are promoted to a longer TTL once their read
counter reaches the threshold. Store failures are logged and degrade to a
miss; the cache never raises to its caller.
"""
from typing import Dict, List, Optional, Union
import logging

from app.kv import codec
from app.kv.base import KeyValueStore
from app.models import Product
from app.schemas.product import ProductSnapshot, CacheStats

logger = logging.getLogger(__name__)

PRODUCT_PREFIX = "colocacion:product:"
FREQUENT_PREFIX = "colocacion:frequent:"
STATS_KEY = "colocacion:cache:stats"


class ProductCache:

    def __init__(
        self,
        kv: KeyValueStore,
        ttl: int = 300,
        frequent_ttl: int = 1800,
        frequent_threshold: int = 5,
        frequency_window: int = 86400,
    ):
        self.kv = kv
        self.ttl = ttl
        self.frequent_ttl = frequent_ttl
        self.frequent_threshold = frequent_threshold
        self.frequency_window = frequency_window

    async def _bump_frequency(self, barcode: str) -> int:
        key = f"{FREQUENT_PREFIX}{barcode}"
        count = await self.kv.incr(key)
        if count == 1:
            await self.kv.expire(key, self.frequency_window)
        return count

    async def get(self, barcode: str) -> Optional[ProductSnapshot]:
        key = f"{PRODUCT_PREFIX}{barcode}"
        try:
            raw = await self.kv.get(key)
            if raw is None:
                await self.kv.hincrby(STATS_KEY, "misses")
                return None

            frequency = await self._bump_frequency(barcode)
            if frequency >= self.frequent_threshold:
                await self.kv.expire(key, self.frequent_ttl)
            await self.kv.hincrby(STATS_KEY, "hits")

            return codec.loads(ProductSnapshot, raw)
        except Exception as e:
            logger.warning(f"Cache read failed for {barcode}: {e}")
            return None

    async def put(self, product: Union[Product, ProductSnapshot], frequent: bool = False):
        snapshot = product if isinstance(product, ProductSnapshot) else ProductSnapshot.model_validate(product)
        try:
            await self.kv.set(
                f"{PRODUCT_PREFIX}{snapshot.barcode}",
                codec.dumps(snapshot),
                ttl=self.frequent_ttl if frequent else self.ttl,
            )
            if frequent:
                await self._bump_frequency(snapshot.barcode)
        except Exception as e:
            logger.warning(f"Cache write failed for {snapshot.barcode}: {e}")

    async def invalidate(self, barcode: str):
        try:
            await self.kv.delete(f"{PRODUCT_PREFIX}{barcode}")
            logger.debug(f"Cache invalidated: {barcode}")
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {barcode}: {e}")

    async def clear(self) -> int:
        """Drop every cached product and frequency counter"""
        try:
            product_keys = await self.kv.keys(PRODUCT_PREFIX)
            frequent_keys = await self.kv.keys(FREQUENT_PREFIX)
            if product_keys or frequent_keys:
                await self.kv.delete(*product_keys, *frequent_keys)
            logger.info(f"Cache cleared: {len(product_keys)} products")
            return len(product_keys)
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")
            return 0

    async def stats(self) -> CacheStats:
        try:
            data = await self.kv.hgetall(STATS_KEY)
        except Exception as e:
            logger.warning(f"Cache stats unavailable: {e}")
            data = {}

        hits = int(data.get("hits", 0))
        misses = int(data.get("misses", 0))
        total = hits + misses
        hit_rate = round(hits / total * 100, 2) if total > 0 else 0.0
        return CacheStats(hits=hits, misses=misses, total=total, hit_rate=hit_rate)

    async def reset_stats(self):
        try:
            await self.kv.delete(STATS_KEY)
        except Exception as e:
            logger.warning(f"Cache stats reset failed: {e}")

    async def frequent_products(self, limit: int = 20) -> List[Dict]:
        """Barcodes at or above the promotion threshold, most read first"""
        try:
            keys = await self.kv.keys(FREQUENT_PREFIX)
            result = []
            for key in keys:
                raw = await self.kv.get(key)
                if raw is None:
                    continue
                frequency = int(raw)
                if frequency >= self.frequent_threshold:
                    result.append({
                        "barcode": key[len(FREQUENT_PREFIX):],
                        "frequency": frequency,
                    })
            result.sort(key=lambda item: item["frequency"], reverse=True)
            return result[:limit]
        except Exception as e:
            logger.warning(f"Frequent products unavailable: {e}")
            return []
