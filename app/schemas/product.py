"""
Product Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from uuid import UUID
from decimal import Decimal
from datetime import datetime

from .print_queue import JobPriority


class ProductSnapshot(BaseModel):
    """Product as cached and returned to devices"""
    id: UUID
    odoo_product_id: int
    barcode: str
    reference: str
    description: str
    location: Optional[str] = None
    stock: Decimal
    status: str
    last_odoo_sync: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductState(BaseModel):
    """Placement fields tracked by optimistic updates and undo/redo"""
    location: Optional[str] = None
    stock: Decimal


class ProductUpdate(BaseModel):
    location: Optional[str] = None
    stock: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=3)
    confirmation_token: Optional[str] = None
    print_priority: JobPriority = JobPriority.NORMAL


class ProductSearchResult(BaseModel):
    product: Optional[ProductSnapshot] = None
    found: bool
    source: str  # cache, database
    search_duration_ms: int


class ProductChanges(BaseModel):
    location_changed: bool = False
    stock_changed: bool = False


class ProductUpdateResult(BaseModel):
    success: bool
    product: ProductSnapshot
    changes: ProductChanges
    optimistic_update_id: Optional[str] = None
    label_id: Optional[UUID] = None
    print_job_id: Optional[str] = None
    warnings: List[Dict[str, Any]] = []


class LocationHistoryItem(BaseModel):
    id: UUID
    product_id: UUID
    old_location: Optional[str]
    new_location: Optional[str]
    changed_by: str
    change_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class LocationOccupancy(BaseModel):
    location: str
    is_available: bool
    product_count: int
    products: List[Dict[str, Any]]


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    total: int = 0
    hit_rate: float = 0.0
