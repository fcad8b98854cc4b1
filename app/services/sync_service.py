"""
Sync Service - Product reconciliation between the local store and Odoo
"""
from typing import Optional, List, Dict, Any, Callable
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4
from sqlalchemy.orm import Session
import logging
import asyncio
import time

from app.core.exceptions import SyncPushError
from app.core.time_utils import utcnow
from app.integrations.base import BaseErpClient, ErpProduct, ErpError
from app.kv import codec
from app.kv.base import KeyValueStore
from app.models import Product, ProductStatus, SyncLog, SyncStatus
from app.schemas.sync import (
    ConflictStrategy,
    ChangeType,
    Conflict,
    SyncResult,
    ConnectivityStatus,
    SyncStats,
)
from .cache_service import ProductCache
from .product_store import ProductStore

logger = logging.getLogger(__name__)

SYNC_LOCK_KEY = "sync_lock"
CONFLICT_PREFIX = "sync_conflicts:"

# local field -> ERP field
SYNCED_FIELDS = {
    "reference": "default_code",
    "description": "name",
    "stock": "qty_available",
    "status": "active",
}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class SyncService:
    """
    Service for syncing products with the ERP
    """

    def __init__(
        self,
        erp_client: BaseErpClient,
        store: ProductStore,
        cache: ProductCache,
        kv: KeyValueStore,
        session_factory: Callable[[], Session],
        lock_ttl: int = 30,
        stale_after_minutes: int = 60,
        item_delay: float = 0.1,
        conflict_ttl: int = 86400,
    ):
        self.erp_client = erp_client
        self.store = store
        self.cache = cache
        self.kv = kv
        self.session_factory = session_factory
        self.lock_ttl = lock_ttl
        self.stale_after_minutes = stale_after_minutes
        self.item_delay = item_delay
        self.conflict_ttl = conflict_ttl

    # ========== Conflict detection & resolution ==========

    @staticmethod
    def _erp_value(erp_product: ErpProduct, field: str) -> Any:
        if field == "status":
            return ProductStatus.ACTIVE if erp_product.active else ProductStatus.INACTIVE
        if field == "stock":
            return Decimal(erp_product.qty_available).quantize(Decimal("0.001"))
        return getattr(erp_product, SYNCED_FIELDS[field])

    def detect_conflicts(self, product: Product, erp_product: ErpProduct) -> List[Conflict]:
        """One conflict per synced field whose local and ERP values differ"""
        now = utcnow()
        conflicts = []
        for field in SYNCED_FIELDS:
            local_value = getattr(product, field)
            erp_value = self._erp_value(erp_product, field)
            if field == "stock":
                local_value = Decimal(local_value or 0).quantize(Decimal("0.001"))
            if local_value != erp_value:
                conflicts.append(Conflict(
                    product_id=product.id,
                    field=field,
                    local_value=local_value,
                    erp_value=erp_value,
                    local_timestamp=product.updated_at,
                    erp_timestamp=now,
                ))
        return conflicts

    def resolve_conflicts(
        self,
        conflicts: List[Conflict],
        strategy: ConflictStrategy,
    ) -> Dict[str, Any]:
        """
        Returns {field: value} to write locally.
        TIMESTAMP compares against a synthetic ERP timestamp (detection time),
        so in practice the ERP value wins whenever the fields differ.
        """
        resolved = {}
        for conflict in conflicts:
            if strategy == ConflictStrategy.ERP_WINS:
                resolved[conflict.field] = conflict.erp_value
            elif strategy == ConflictStrategy.LOCAL_WINS:
                resolved[conflict.field] = conflict.local_value
            elif strategy == ConflictStrategy.TIMESTAMP:
                if conflict.local_timestamp is None or conflict.erp_timestamp > conflict.local_timestamp:
                    resolved[conflict.field] = conflict.erp_value
                else:
                    resolved[conflict.field] = conflict.local_value

        if strategy == ConflictStrategy.TIMESTAMP and conflicts:
            logger.debug(
                f"Timestamp resolution for product {conflicts[0].product_id} "
                f"uses detection time as the ERP timestamp"
            )
        return resolved

    async def apply_erp_changes(self, product: Product, resolved: Dict[str, Any]) -> bool:
        """Write resolved values; only stamps last_odoo_sync if something changed"""
        changed_fields = [
            field for field, value in resolved.items()
            if getattr(product, field) != value
        ]
        if not changed_fields:
            return False

        for field in changed_fields:
            setattr(product, field, resolved[field])
        product.last_odoo_sync = utcnow()
        self.store.save(product)
        await self.cache.invalidate(product.barcode)

        logger.info(f"Applied ERP changes to {product.reference}: {', '.join(changed_fields)}")
        return True

    async def _store_manual_conflicts(self, conflicts: List[Conflict], user_id: str):
        for conflict in conflicts:
            conflict.user_id = user_id
            await self.kv.set(
                f"{CONFLICT_PREFIX}{conflict.product_id}:{conflict.field}",
                codec.dumps(conflict),
                ttl=self.conflict_ttl,
            )
        logger.warning(f"{len(conflicts)} conflicts stored for manual resolution")

    async def list_conflicts(self, product_id: Optional[UUID] = None) -> List[Conflict]:
        prefix = f"{CONFLICT_PREFIX}{product_id}:" if product_id else CONFLICT_PREFIX
        conflicts = []
        for key in await self.kv.keys(prefix):
            conflict = codec.loads(Conflict, await self.kv.get(key))
            if conflict:
                conflicts.append(conflict)
        return conflicts

    async def resolve_conflict(
        self,
        product_id: UUID,
        field: str,
        use_local: bool,
        user_id: str = "system",
    ) -> bool:
        """
        Apply an operator's decision for one stored conflict.

        Keeping a local stock value pushes it to the ERP; if that push fails
        the conflict stays stored and SyncPushError is raised. The ERP has no
        write API for the other synced fields, so a local choice for them
        holds until the next sync compares again.
        """
        key = f"{CONFLICT_PREFIX}{product_id}:{field}"
        conflict = codec.loads(Conflict, await self.kv.get(key))
        if conflict is None:
            return False

        product = self.store.find_by_id(product_id)
        if product is None:
            await self.kv.delete(key)
            return False

        if not use_local:
            value = conflict.erp_value
            if field == "stock":
                value = Decimal(str(value)).quantize(Decimal("0.001"))
            await self.apply_erp_changes(product, {field: value})
        elif field == "stock":
            pushed = await self.push_to_erp(product_id, ChangeType.STOCK, user_id)
            if not pushed.success:
                logger.warning(f"Conflict {product_id}:{field} kept: {', '.join(pushed.errors)}")
                raise SyncPushError(f"Could not push local stock to ERP: {', '.join(pushed.errors)}")
        else:
            logger.info(f"Local {field} of {product.reference} kept until the next sync")
        await self.kv.delete(key)
        logger.info(f"Conflict {product_id}:{field} resolved ({'local' if use_local else 'erp'})")
        return True

    # ========== Sync one product ==========

    async def sync_product(
        self,
        product_id: UUID,
        user_id: str = "system",
        strategy: ConflictStrategy = ConflictStrategy.TIMESTAMP,
    ) -> SyncResult:
        started = time.monotonic()
        result = SyncResult()

        product = self.store.find_by_id(product_id)
        if not product:
            result.errors.append("product not found locally")
            result.duration_ms = _elapsed_ms(started)
            return result

        result.processed = 1
        try:
            erp_product = await self.erp_client.get_product(product.odoo_product_id)
        except ErpError as e:
            logger.error(f"ERP error syncing {product.reference}: {e}")
            result.failed = 1
            result.errors.append(str(e))
            result.duration_ms = _elapsed_ms(started)
            return result

        if erp_product is None:
            result.failed = 1
            result.errors.append("product not found in ERP")
            result.duration_ms = _elapsed_ms(started)
            return result

        conflicts = self.detect_conflicts(product, erp_product)
        if conflicts and strategy == ConflictStrategy.MANUAL:
            await self._store_manual_conflicts(conflicts, user_id)
            result.failed = 1
            result.errors.append("unresolved conflicts")
            result.duration_ms = _elapsed_ms(started)
            return result

        if conflicts:
            resolved = self.resolve_conflicts(conflicts, strategy)
            if await self.apply_erp_changes(product, resolved):
                result.updated = 1

        result.success = True
        result.duration_ms = _elapsed_ms(started)
        return result

    # ========== Push to ERP ==========

    async def push_to_erp(
        self,
        product_id: UUID,
        change_type: ChangeType,
        user_id: str,
        device_id: Optional[str] = None,
    ) -> SyncResult:
        started = time.monotonic()
        result = SyncResult()

        product = self.store.find_by_id(product_id)
        if not product:
            result.errors.append("product not found locally")
            result.duration_ms = _elapsed_ms(started)
            return result

        result.processed = 1
        logger.info(f"Push {change_type.value} of {product.reference} to ERP by {user_id} ({device_id})")

        if change_type in (ChangeType.LOCATION, ChangeType.BOTH) and product.location:
            try:
                await self.erp_client.update_location(product.odoo_product_id, product.location)
            except ErpError as e:
                result.errors.append(f"location: {e}")

        if change_type in (ChangeType.STOCK, ChangeType.BOTH):
            try:
                await self.erp_client.update_stock(product.odoo_product_id, Decimal(product.stock))
            except ErpError as e:
                result.errors.append(f"stock: {e}")

        if result.errors:
            result.failed = 1
        else:
            product.last_odoo_sync = utcnow()
            self.store.save(product)
            result.updated = 1
            result.success = True

        result.duration_ms = _elapsed_ms(started)
        return result

    # ========== Full sync ==========

    async def _refresh_lock(self, token: str) -> bool:
        """Extend the sweep lock while this run still owns it"""
        if await self.kv.get(SYNC_LOCK_KEY) != token:
            return False
        return await self.kv.expire(SYNC_LOCK_KEY, self.lock_ttl)

    async def _release_lock(self, token: str):
        if await self.kv.get(SYNC_LOCK_KEY) == token:
            await self.kv.delete(SYNC_LOCK_KEY)

    async def full_sync(
        self,
        max_items: int = 100,
        strategy: ConflictStrategy = ConflictStrategy.TIMESTAMP,
    ) -> SyncResult:
        """
        Sweep stale products. Only one sweep runs at a time; a concurrent
        call returns immediately. The lock is extended after every item and a
        sweep that finds it taken over stops without touching the new owner.
        """
        started = time.monotonic()
        result = SyncResult()

        token = str(uuid4())
        acquired = await self.kv.set_if_absent(SYNC_LOCK_KEY, token, ttl=self.lock_ttl)
        if not acquired:
            result.errors.append("sync already in progress")
            return result

        log = self._start_log(strategy)
        try:
            cutoff = utcnow() - timedelta(minutes=self.stale_after_minutes)
            products = self.store.find_stale(cutoff, max_items)
            logger.info(f"Full sync: {len(products)} stale products")

            for index, product in enumerate(products):
                try:
                    item = await self.sync_product(product.id, strategy=strategy)
                except Exception as e:
                    logger.error(f"Error syncing {product.reference}: {e}")
                    item = SyncResult(processed=1, failed=1, errors=[str(e)])

                result.processed += item.processed
                result.updated += item.updated
                if not item.success:
                    result.failed += 1
                    result.errors.append(f"{product.reference}: {', '.join(item.errors)}")

                if not await self._refresh_lock(token):
                    logger.warning("Full sync lost its lock to another sweep; stopping")
                    result.errors.append("sync lock lost")
                    break

                if index < len(products) - 1 and self.item_delay:
                    await asyncio.sleep(self.item_delay)
            else:
                result.success = True
        except Exception as e:
            logger.error(f"Full sync failed: {e}")
            result.errors.append(str(e))
        finally:
            await self._release_lock(token)

        result.duration_ms = _elapsed_ms(started)
        self._finish_log(log, result)
        logger.info(
            f"Full sync done: processed={result.processed} updated={result.updated} "
            f"failed={result.failed} in {result.duration_ms}ms"
        )
        return result

    def _start_log(self, strategy: ConflictStrategy) -> Optional[SyncLog]:
        db = self.session_factory()
        try:
            log = SyncLog(strategy=strategy.value, status=SyncStatus.RUNNING.value)
            db.add(log)
            db.commit()
            return log
        except Exception as e:
            db.rollback()
            logger.error(f"Could not record sync log: {e}")
            return None
        finally:
            db.close()

    def _finish_log(self, log: Optional[SyncLog], result: SyncResult):
        if log is None:
            return
        db = self.session_factory()
        try:
            log = db.merge(log)
            log.completed_at = utcnow()
            log.status = SyncStatus.SUCCESS.value if result.success else SyncStatus.FAILED.value
            log.processed = result.processed
            log.updated = result.updated
            log.failed = result.failed
            log.duration_ms = result.duration_ms
            log.errors = result.errors[:20]
            if not result.success and result.errors:
                log.error_message = result.errors[-1][:500]
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Could not update sync log: {e}")
        finally:
            db.close()

    # ========== Health & stats ==========

    async def check_connectivity(self) -> ConnectivityStatus:
        try:
            await self.erp_client.test_connection()
            info = await self.erp_client.get_system_info()
            return ConnectivityStatus(connected=True, system_info=info)
        except ErpError as e:
            logger.warning(f"ERP connectivity check failed: {e}")
            return ConnectivityStatus(connected=False, error=str(e))

    def sync_stats(self, days: int = 7) -> SyncStats:
        db = self.session_factory()
        try:
            since = utcnow() - timedelta(days=days)
            logs = db.query(SyncLog).filter(SyncLog.started_at >= since).all()
            stats = SyncStats(total_syncs=len(logs))
            for log in logs:
                if log.status == SyncStatus.SUCCESS.value:
                    stats.successful_syncs += 1
                elif log.status == SyncStatus.FAILED.value:
                    stats.failed_syncs += 1
                stats.products_processed += log.processed or 0
                stats.products_updated += log.updated or 0
                stats.products_failed += log.failed or 0
                if stats.last_sync is None or log.started_at > stats.last_sync:
                    stats.last_sync = log.started_at
            return stats
        finally:
            db.close()
