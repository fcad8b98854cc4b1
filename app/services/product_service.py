"""
Product Service - Search and placement updates from handheld devices
"""
from typing import List, Optional
from uuid import UUID, uuid4
import logging
import time

from app.core.exceptions import (
    ValidationError,
    NotFoundError,
    ConfirmationRequired,
    QueueError,
)
from app.kv.base import KeyValueStore
from app.models import Product, ProductLocationHistory
from app.schemas.optimistic import ProposedState
from app.schemas.product import (
    ProductSnapshot,
    ProductUpdate,
    ProductSearchResult,
    ProductChanges,
    ProductUpdateResult,
    LocationOccupancy,
)
from .cache_service import ProductCache
from .label_service import LabelService
from .optimistic_update_service import OptimisticUpdateService
from .print_queue_service import PrintQueueService
from .product_store import ProductStore
from .validators import (
    BarcodeValidator,
    LocationValidator,
    normalize_stock,
    detect_critical_changes,
)

logger = logging.getLogger(__name__)

CONFIRMATION_PREFIX = "confirmation_token:"
LOCATION_CHANGE_REASON = "Actualización desde PDA"


class ProductService:
    """Product business logic"""

    def __init__(
        self,
        store: ProductStore,
        cache: ProductCache,
        optimistic: OptimisticUpdateService,
        label_service: LabelService,
        print_queue: PrintQueueService,
        kv: KeyValueStore,
        confirmation_ttl: int = 300,
    ):
        self.store = store
        self.cache = cache
        self.optimistic = optimistic
        self.label_service = label_service
        self.print_queue = print_queue
        self.kv = kv
        self.confirmation_ttl = confirmation_ttl

    # ========== Read ==========

    async def search_by_barcode(self, barcode: str) -> ProductSearchResult:
        """Cache first, then the database"""
        started = time.monotonic()
        cleaned = BarcodeValidator.validate_and_clean(barcode)

        cached = await self.cache.get(cleaned)
        if cached is not None:
            return ProductSearchResult(
                product=cached,
                found=True,
                source="cache",
                search_duration_ms=int((time.monotonic() - started) * 1000),
            )

        product = self.store.find_by_barcode(cleaned)
        if product is not None:
            await self.cache.put(product)

        return ProductSearchResult(
            product=ProductSnapshot.model_validate(product) if product else None,
            found=product is not None,
            source="database",
            search_duration_ms=int((time.monotonic() - started) * 1000),
        )

    def get_product(self, product_id: UUID) -> Product:
        product = self.store.find_by_id(product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def location_history(self, product_id: UUID, limit: int = 50) -> List[ProductLocationHistory]:
        self.get_product(product_id)
        return self.store.location_history(product_id, limit)

    def products_by_location(self, location: str) -> LocationOccupancy:
        cleaned = LocationValidator.validate_and_clean(location)
        products = self.store.find_by_location(cleaned)
        return LocationOccupancy(
            location=cleaned,
            is_available=len(products) == 0,
            product_count=len(products),
            products=[
                {
                    "id": str(p.id),
                    "barcode": p.barcode,
                    "reference": p.reference,
                    "description": p.description,
                    "stock": str(p.stock),
                }
                for p in products
            ],
        )

    # ========== Critical change confirmation ==========

    @staticmethod
    def _fingerprint(product: Product, user_id: str, location_given: bool, location, stock) -> str:
        return f"{product.id}|{user_id}|{int(location_given)}|{location}|{stock}"

    async def _require_confirmation(
        self,
        product: Product,
        update: ProductUpdate,
        warnings: List[dict],
        fingerprint: str,
    ):
        """Consume a matching token or raise with a fresh one"""
        if update.confirmation_token:
            key = f"{CONFIRMATION_PREFIX}{update.confirmation_token}"
            if await self.kv.get(key) == fingerprint:
                await self.kv.delete(key)
                logger.info(f"Critical change on {product.reference} confirmed")
                return
            logger.warning(f"Invalid or expired confirmation token for {product.reference}")

        token = str(uuid4())
        await self.kv.set(f"{CONFIRMATION_PREFIX}{token}", fingerprint, ttl=self.confirmation_ttl)
        raise ConfirmationRequired(
            "This change needs confirmation",
            warnings=warnings,
            confirmation_token=token,
        )

    # ========== Update ==========

    async def update_product(
        self,
        product_id: UUID,
        update: ProductUpdate,
        user_id: str,
        device_id: str,
    ) -> ProductUpdateResult:
        """
        Validate, stage, write, then confirm. A failed write rolls the
        staged update back and re-raises.
        """
        product = self.get_product(product_id)
        if not product.is_active():
            raise ValidationError(f"Product {product.reference} is inactive")

        location_given = "location" in update.model_fields_set
        new_location = None
        if location_given and update.location is not None:
            new_location = LocationValidator.validate_and_clean(update.location)
        new_stock = normalize_stock(update.stock) if update.stock is not None else None

        if not location_given and new_stock is None:
            raise ValidationError("Nothing to update: provide location and/or stock")

        warnings = detect_critical_changes(
            old_location=product.location,
            new_location=new_location,
            location_given=location_given,
            old_stock=product.stock,
            new_stock=new_stock,
        )
        if warnings:
            fingerprint = self._fingerprint(product, user_id, location_given, new_location, new_stock)
            await self._require_confirmation(product, update, warnings, fingerprint)

        old_location = product.location
        changes = ProductChanges(
            location_changed=location_given and new_location != old_location,
            stock_changed=new_stock is not None and new_stock != product.stock,
        )
        proposed = ProposedState(location=new_location, stock=new_stock, has_location=location_given)

        update_id = await self.optimistic.stage(product, proposed, user_id, device_id)
        try:
            if location_given:
                product.location = new_location
            if new_stock is not None:
                product.stock = new_stock
            saved = self.store.save(product)
        except Exception as e:
            logger.error(f"Update of {product.reference} failed, rolling back: {e}")
            try:
                await self.optimistic.rollback(update_id)
            except Exception as rollback_error:
                logger.error(f"Rollback of {update_id} failed: {rollback_error}")
            raise

        await self.optimistic.confirm(update_id)
        await self.cache.invalidate(saved.barcode)

        if changes.location_changed:
            self.store.add_location_change(
                saved.id, old_location, saved.location, user_id, LOCATION_CHANGE_REASON
            )

        result = ProductUpdateResult(
            success=True,
            product=ProductSnapshot.model_validate(saved),
            changes=changes,
            optimistic_update_id=update_id,
            warnings=warnings,
        )

        if location_given and saved.location:
            label = self.label_service.create_or_update_label(saved, user_id, device_id)
            result.label_id = label.id
            if changes.location_changed:
                try:
                    result.print_job_id = await self.print_queue.enqueue(
                        [str(label.id)], user_id, device_id, update.print_priority
                    )
                except QueueError as e:
                    # The label stays pending and can be printed later
                    logger.warning(f"Label {label.id} not queued for printing: {e}")

        logger.info(
            f"Product {saved.reference} updated by {user_id}: "
            f"location={saved.location} stock={saved.stock}"
        )
        return result
