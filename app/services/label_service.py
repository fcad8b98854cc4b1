"""
Label Service - Shelf label records and device independent rendering
"""
import logging
from datetime import timedelta
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.core.time_utils import utcnow
from app.models import Product, ProductLabel
from app.schemas.label import LabelData, LabelElement, LabelLayout, LabelBatchResult, LabelStats

logger = logging.getLogger(__name__)

# DYMO 11355 style label, millimetres
LABEL_WIDTH = 28
LABEL_HEIGHT = 89
DESCRIPTION_MAX_LENGTH = 25


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


class LabelService:

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    # ========== Rendering ==========

    @staticmethod
    def render(data: LabelData) -> LabelLayout:
        return LabelLayout(
            width=LABEL_WIDTH,
            height=LABEL_HEIGHT,
            elements=[
                LabelElement(
                    type="text", content=data.reference,
                    x=2, y=2, width=24, height=8,
                    font_size=12, font_weight="bold", alignment="center",
                ),
                LabelElement(
                    type="text", content=truncate(data.description, DESCRIPTION_MAX_LENGTH),
                    x=2, y=12, width=24, height=20,
                    font_size=8, font_weight="normal", alignment="center",
                ),
                LabelElement(
                    type="text", content=f"LOC: {data.location}",
                    x=2, y=34, width=24, height=8,
                    font_size=10, font_weight="bold", alignment="center",
                ),
                LabelElement(
                    type="barcode", content=data.barcode,
                    x=2, y=44, width=24, height=40,
                ),
                LabelElement(
                    type="text", content=data.barcode,
                    x=2, y=86, width=24, height=3,
                    font_size=6, font_weight="normal", alignment="center",
                ),
            ],
        )

    @staticmethod
    def validate_layout(layout: LabelLayout) -> bool:
        """Every element must stay inside the physical label"""
        if layout.width != LABEL_WIDTH or layout.height != LABEL_HEIGHT:
            logger.warning(f"Unexpected label size {layout.width}x{layout.height}")
            return False
        for element in layout.elements:
            if element.x < 0 or element.y < 0:
                return False
            if element.x + element.width > layout.width:
                logger.warning(f"Element {element.type} overflows label width")
                return False
            if element.y + element.height > layout.height:
                logger.warning(f"Element {element.type} overflows label height")
                return False
        return True

    @staticmethod
    def label_data(label: ProductLabel) -> LabelData:
        return LabelData(
            reference=label.reference,
            description=label.description,
            location=label.location,
            barcode=label.barcode,
        )

    def render_batch(self, label_ids: List[UUID], user_id: Optional[str] = None) -> List[LabelLayout]:
        db = self.session_factory()
        try:
            query = db.query(ProductLabel).filter(ProductLabel.id.in_(label_ids))
            if user_id:
                query = query.filter(ProductLabel.created_by == user_id)
            layouts = []
            for label in query.order_by(ProductLabel.created_at).all():
                layout = self.render(self.label_data(label))
                if not self.validate_layout(layout):
                    raise ValidationError(f"Label {label.id} does not fit the label format")
                layouts.append(layout)
            return layouts
        finally:
            db.close()

    # ========== Records ==========

    def create_or_update_label(self, product: Product, user_id: str, device_id: str) -> ProductLabel:
        """One label per product per user; refreshing resets it to pending"""
        if not product.location:
            raise ValidationError("Cannot create a label for a product without location")

        db = self.session_factory()
        try:
            label = db.query(ProductLabel).filter(
                ProductLabel.product_id == product.id,
                ProductLabel.created_by == user_id,
            ).first()

            if label is None:
                label = ProductLabel(product_id=product.id, created_by=user_id)
                db.add(label)

            label.barcode = product.barcode
            label.reference = product.reference
            label.description = product.description
            label.location = product.location
            label.device_identifier = device_id
            label.is_printed = False
            label.printed_at = None

            db.commit()
            logger.info(f"Label for {product.reference} @ {product.location} saved for {user_id}")
            return label
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def pending_labels(self, user_id: str, device_id: Optional[str] = None) -> List[ProductLabel]:
        db = self.session_factory()
        try:
            query = db.query(ProductLabel).filter(
                ProductLabel.created_by == user_id,
                ProductLabel.is_printed.is_(False),
            )
            if device_id:
                query = query.filter(ProductLabel.device_identifier == device_id)
            return query.order_by(ProductLabel.created_at.desc()).all()
        finally:
            db.close()

    def delete_labels(self, label_ids: List[UUID], user_id: str) -> LabelBatchResult:
        """Users can only delete their own labels"""
        db = self.session_factory()
        try:
            deleted = db.query(ProductLabel).filter(
                ProductLabel.id.in_(label_ids),
                ProductLabel.created_by == user_id,
            ).delete(synchronize_session=False)
            db.commit()

            result = LabelBatchResult(processed=deleted)
            if deleted < len(label_ids):
                result.errors.append(f"{len(label_ids) - deleted} labels not found or not owned by user")
            return result
        finally:
            db.close()

    def mark_printed(self, label_ids: List[UUID], user_id: Optional[str] = None) -> LabelBatchResult:
        db = self.session_factory()
        try:
            query = db.query(ProductLabel).filter(ProductLabel.id.in_(label_ids))
            if user_id:
                query = query.filter(ProductLabel.created_by == user_id)
            labels = query.all()
            for label in labels:
                label.mark_as_printed()
            db.commit()

            result = LabelBatchResult(processed=len(labels))
            if len(labels) < len(label_ids):
                result.errors.append(f"{len(label_ids) - len(labels)} labels not found")
            return result
        finally:
            db.close()

    def label_stats(self, user_id: str) -> LabelStats:
        db = self.session_factory()
        try:
            base = db.query(func.count(ProductLabel.id)).filter(ProductLabel.created_by == user_id)
            today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            return LabelStats(
                total_labels=base.scalar() or 0,
                pending_labels=base.filter(ProductLabel.is_printed.is_(False)).scalar() or 0,
                printed_labels=base.filter(ProductLabel.is_printed.is_(True)).scalar() or 0,
                labels_today=base.filter(ProductLabel.created_at >= today).scalar() or 0,
            )
        finally:
            db.close()

    def cleanup_old_printed(self, days: int = 30) -> int:
        """Delete labels printed more than `days` ago"""
        db = self.session_factory()
        try:
            cutoff = utcnow() - timedelta(days=days)
            deleted = db.query(ProductLabel).filter(
                ProductLabel.is_printed.is_(True),
                ProductLabel.printed_at < cutoff,
            ).delete(synchronize_session=False)
            db.commit()
            if deleted:
                logger.info(f"Deleted {deleted} labels printed before {cutoff:%Y-%m-%d}")
            return deleted
        finally:
            db.close()
