"""
Product Store - Durable access to products and their location history
"""
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.models import Product, ProductStatus, ProductLocationHistory

logger = logging.getLogger(__name__)


class ProductStore:
    """
    Keyed CRUD over the products table.
    Every call runs in its own session; returned products are detached
    with all columns loaded.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def find_by_id(self, product_id: UUID) -> Optional[Product]:
        db = self.session_factory()
        try:
            return db.query(Product).filter(Product.id == product_id).first()
        finally:
            db.close()

    def find_by_barcode(self, barcode: str) -> Optional[Product]:
        db = self.session_factory()
        try:
            return db.query(Product).filter(Product.barcode == barcode).first()
        finally:
            db.close()

    def save(self, product: Product) -> Product:
        db = self.session_factory()
        try:
            saved = db.merge(product)
            db.commit()
            return saved
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def find_by_location(self, location: str) -> List[Product]:
        db = self.session_factory()
        try:
            return db.query(Product).filter(
                Product.location == location,
                Product.status == ProductStatus.ACTIVE,
            ).order_by(Product.reference).all()
        finally:
            db.close()

    def find_stale(self, cutoff: datetime, limit: int) -> List[Product]:
        """Active products never synced or synced before cutoff, oldest first"""
        db = self.session_factory()
        try:
            return db.query(Product).filter(
                Product.status == ProductStatus.ACTIVE,
                (Product.last_odoo_sync.is_(None)) | (Product.last_odoo_sync < cutoff),
            ).order_by(
                Product.last_odoo_sync.is_(None).desc(),
                Product.last_odoo_sync.asc(),
            ).limit(limit).all()
        finally:
            db.close()

    def add_location_change(
        self,
        product_id: UUID,
        old_location: Optional[str],
        new_location: Optional[str],
        changed_by: str,
        change_reason: Optional[str] = None,
    ) -> ProductLocationHistory:
        db = self.session_factory()
        try:
            record = ProductLocationHistory(
                product_id=product_id,
                old_location=old_location,
                new_location=new_location,
                changed_by=changed_by,
                change_reason=change_reason,
            )
            db.add(record)
            db.commit()
            logger.info(f"Location change {product_id}: {old_location} -> {new_location} by {changed_by}")
            return record
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def location_history(self, product_id: UUID, limit: int = 50) -> List[ProductLocationHistory]:
        db = self.session_factory()
        try:
            return db.query(ProductLocationHistory).filter(
                ProductLocationHistory.product_id == product_id
            ).order_by(ProductLocationHistory.created_at.desc()).limit(limit).all()
        finally:
            db.close()
