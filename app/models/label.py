"""
Product Label Model
Pending or printed shelf label snapshot, one per product per creator
"""
from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core import Base
from app.core.time_utils import utcnow
from .base import UUIDMixin, TimestampMixin


class ProductLabel(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "product_labels"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot taken when the label was created/refreshed
    barcode = Column(String(50), nullable=False)
    reference = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String(10), nullable=False)

    created_by = Column(String(100), nullable=False, index=True)
    device_identifier = Column(String(100), nullable=False)

    is_printed = Column(Boolean, nullable=False, default=False)
    printed_at = Column(DateTime, nullable=True)

    product = relationship("Product", back_populates="labels")

    __table_args__ = (
        UniqueConstraint("product_id", "created_by", name="uq_product_labels_product_creator"),
        Index("ix_product_labels_printed", "is_printed", "printed_at"),
    )

    def mark_as_printed(self):
        self.is_printed = True
        self.printed_at = utcnow()

    def __repr__(self):
        return f"<ProductLabel {self.reference} {self.location} printed={self.is_printed}>"
