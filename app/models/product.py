"""
Product & Location History Models
"""
from sqlalchemy import Column, String, Numeric, Integer, Text, DateTime, ForeignKey, Index, Uuid, CheckConstraint
from sqlalchemy.orm import relationship

from app.core import Base
from app.core.time_utils import utcnow
from .base import UUIDMixin, TimestampMixin


class ProductStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class Product(Base, UUIDMixin, TimestampMixin):
    """Local mirror of an Odoo product with its physical placement"""
    __tablename__ = "products"

    odoo_product_id = Column(Integer, unique=True, nullable=False, index=True)
    barcode = Column(String(50), unique=True, nullable=False, index=True)
    reference = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String(10), nullable=True, index=True)  # A213: aisle + block + level
    stock = Column(Numeric(10, 3), nullable=False, default=0)
    status = Column(String(10), nullable=False, default=ProductStatus.ACTIVE)
    last_odoo_sync = Column(DateTime, nullable=True)

    location_history = relationship(
        "ProductLocationHistory",
        back_populates="product",
        order_by="ProductLocationHistory.created_at.desc()",
    )
    labels = relationship("ProductLabel", back_populates="product")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        Index("ix_products_status_last_sync", "status", "last_odoo_sync"),
    )

    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def __repr__(self):
        return f"<Product {self.barcode} @ {self.location}>"


class ProductLocationHistory(Base, UUIDMixin):
    """Append-only record of every confirmed location change"""
    __tablename__ = "product_locations"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    old_location = Column(String(10), nullable=True)
    new_location = Column(String(10), nullable=True)
    changed_by = Column(String(100), nullable=False)
    change_reason = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    product = relationship("Product", back_populates="location_history")

    def __repr__(self):
        return f"<ProductLocationHistory {self.old_location} -> {self.new_location}>"
