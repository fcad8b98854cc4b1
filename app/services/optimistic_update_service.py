"""
Optimistic Update Service - Staged product mutations with undo/redo

An update is staged before the durable write, then either confirmed (and
pushed onto the user's undo/redo stack) or rolled back to the snapshot
taken at staging time. While staged, the product is held by an advisory
lock so two devices cannot stage over each other.
"""
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from app.core.exceptions import ProductBusyError
from app.core.time_utils import utcnow, now_ms
from app.kv import codec
from app.kv.base import KeyValueStore
from app.models import Product
from app.schemas.optimistic import (
    OriginalState,
    ProposedState,
    OptimisticUpdateRecord,
    UndoRedoOperation,
    UndoRedoResult,
)
from app.schemas.product import ProductSnapshot, ProductState
from .cache_service import ProductCache
from .product_store import ProductStore

logger = logging.getLogger(__name__)

UPDATE_PREFIX = "optimistic_update:"
LOCK_PREFIX = "optimistic_lock:"
UNDO_REDO_PREFIX = "undo_redo:"
DEFAULT_ROLLBACK_REASON = "Error en la actualización"


class OptimisticUpdateService:

    def __init__(
        self,
        kv: KeyValueStore,
        store: ProductStore,
        cache: ProductCache,
        update_ttl: int = 300,
        undo_redo_ttl: int = 3600,
        max_operations: int = 10,
    ):
        self.kv = kv
        self.store = store
        self.cache = cache
        self.update_ttl = update_ttl
        self.undo_redo_ttl = undo_redo_ttl
        self.max_operations = max_operations

    @property
    def record_ttl(self) -> int:
        # Records outlive the staging window so the reaper can still find them.
        # The product lock lives as long as its record: a crashed device keeps
        # the product held until the reaper restores it.
        return self.update_ttl * 2

    # ========== Records ==========

    async def get_record(self, update_id: str) -> Optional[OptimisticUpdateRecord]:
        return codec.loads(OptimisticUpdateRecord, await self.kv.get(f"{UPDATE_PREFIX}{update_id}"))

    async def _save_record(self, record: OptimisticUpdateRecord):
        await self.kv.set(f"{UPDATE_PREFIX}{record.update_id}", codec.dumps(record), ttl=self.record_ttl)

    async def _release_lock(self, record: OptimisticUpdateRecord):
        key = f"{LOCK_PREFIX}{record.product_id}"
        if await self.kv.get(key) == record.update_id:
            await self.kv.delete(key)

    # ========== Stage / confirm / rollback ==========

    async def stage(
        self,
        product: Product,
        proposed: ProposedState,
        user_id: str,
        device_id: str,
    ) -> str:
        """Snapshot the product and persist the staged record; the product itself is untouched"""
        update_id = str(uuid4())

        locked = await self.kv.set_if_absent(f"{LOCK_PREFIX}{product.id}", update_id, ttl=self.record_ttl)
        if not locked:
            raise ProductBusyError(f"Product {product.reference} is being updated from another device")

        record = OptimisticUpdateRecord(
            update_id=update_id,
            product_id=product.id,
            user_id=user_id,
            device_id=device_id,
            original_state=OriginalState(
                location=product.location,
                stock=product.stock,
                last_odoo_sync=product.last_odoo_sync,
            ),
            proposed_state=proposed,
            timestamp=now_ms(),
        )
        await self._save_record(record)
        logger.debug(f"Staged update {update_id} for {product.reference}")
        return update_id

    async def confirm(self, update_id: str) -> bool:
        record = await self.get_record(update_id)
        if record is None or not record.is_pending:
            logger.warning(f"Cannot confirm update {update_id}: unknown or already resolved")
            return False

        record.confirmed = True
        await self._save_record(record)
        await self._push_operation(record)
        await self._release_lock(record)
        logger.debug(f"Confirmed update {update_id}")
        return True

    async def rollback(self, update_id: str, reason: str = DEFAULT_ROLLBACK_REASON) -> bool:
        record = await self.get_record(update_id)
        if record is None or not record.is_pending:
            logger.warning(f"Cannot roll back update {update_id}: unknown or already resolved")
            return False

        # Without the lock another device may already have written the product
        holds_lock = await self.kv.get(f"{LOCK_PREFIX}{record.product_id}") == record.update_id
        product = self.store.find_by_id(record.product_id) if holds_lock else None
        if not holds_lock:
            logger.warning(f"Update {update_id} no longer holds product {record.product_id}; snapshot not restored")
        elif product is not None:
            product.location = record.original_state.location
            product.stock = record.original_state.stock
            product.last_odoo_sync = record.original_state.last_odoo_sync
            self.store.save(product)
            await self.cache.invalidate(product.barcode)

        record.rolled_back = True
        record.rollback_reason = reason
        await self._save_record(record)
        await self._release_lock(record)
        logger.info(f"Rolled back update {update_id}: {reason}")
        return True

    async def cleanup_expired(self) -> int:
        """Force-roll-back staged updates older than the staging TTL"""
        cutoff = now_ms() - self.update_ttl * 1000
        rolled_back = 0
        for key in await self.kv.keys(UPDATE_PREFIX):
            try:
                record = codec.loads(OptimisticUpdateRecord, await self.kv.get(key))
                if record is None or not record.is_pending or record.timestamp > cutoff:
                    continue
                if await self.rollback(record.update_id, "expired"):
                    rolled_back += 1
            except Exception as e:
                logger.error(f"Error cleaning up {key}: {e}")

        if rolled_back:
            logger.info(f"Rolled back {rolled_back} expired optimistic updates")
        return rolled_back

    # ========== Undo / redo ==========

    def _stack_key(self, user_id: str, device_id: str) -> str:
        return f"{UNDO_REDO_PREFIX}{user_id}:{device_id}"

    async def history(self, user_id: str, device_id: str) -> List[UndoRedoOperation]:
        raw = await self.kv.get(self._stack_key(user_id, device_id))
        return codec.loads_list(UndoRedoOperation, raw)

    async def _save_history(self, user_id: str, device_id: str, operations: List[UndoRedoOperation]):
        await self.kv.set(
            self._stack_key(user_id, device_id),
            codec.dumps_list(operations),
            ttl=self.undo_redo_ttl,
        )

    async def _push_operation(self, record: OptimisticUpdateRecord):
        before = ProductState(
            location=record.original_state.location,
            stock=record.original_state.stock,
        )
        proposed = record.proposed_state
        after = ProductState(
            location=proposed.location if proposed.has_location else before.location,
            stock=proposed.stock if proposed.stock is not None else before.stock,
        )

        operations = await self.history(record.user_id, record.device_id)
        for op in operations:
            op.can_redo = False
        operations.insert(0, UndoRedoOperation(
            id=record.update_id,
            product_id=record.product_id,
            user_id=record.user_id,
            device_id=record.device_id,
            before_state=before,
            after_state=after,
            timestamp=now_ms(),
            can_undo=True,
            can_redo=False,
        ))
        await self._save_history(record.user_id, record.device_id, operations[:self.max_operations])

    async def _apply_state(self, product_id: UUID, state: ProductState) -> Optional[Product]:
        product = self.store.find_by_id(product_id)
        if product is None:
            return None
        product.location = state.location
        product.stock = state.stock
        product.last_odoo_sync = utcnow()
        saved = self.store.save(product)
        await self.cache.invalidate(saved.barcode)
        return saved

    async def undo(self, user_id: str, device_id: str) -> UndoRedoResult:
        operations = await self.history(user_id, device_id)
        op = next((o for o in operations if o.can_undo), None)
        if op is None:
            return UndoRedoResult(success=False)

        product = await self._apply_state(op.product_id, op.before_state)
        if product is None:
            logger.warning(f"Undo {op.id}: product {op.product_id} no longer exists")
            return UndoRedoResult(success=False, operation=op)

        op.can_undo = False
        op.can_redo = True
        await self._save_history(user_id, device_id, operations)
        logger.info(f"Undo {op.id} by {user_id}/{device_id}")
        return UndoRedoResult(success=True, operation=op, product=ProductSnapshot.model_validate(product))

    async def redo(self, user_id: str, device_id: str) -> UndoRedoResult:
        operations = await self.history(user_id, device_id)
        op = next((o for o in operations if o.can_redo), None)
        if op is None:
            return UndoRedoResult(success=False)

        product = await self._apply_state(op.product_id, op.after_state)
        if product is None:
            logger.warning(f"Redo {op.id}: product {op.product_id} no longer exists")
            return UndoRedoResult(success=False, operation=op)

        op.can_undo = True
        op.can_redo = False
        await self._save_history(user_id, device_id, operations)
        logger.info(f"Redo {op.id} by {user_id}/{device_id}")
        return UndoRedoResult(success=True, operation=op, product=ProductSnapshot.model_validate(product))
