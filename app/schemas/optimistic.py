"""
Optimistic Update & Undo/Redo Schemas
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from decimal import Decimal
from datetime import datetime

from .product import ProductSnapshot, ProductState


class OriginalState(BaseModel):
    location: Optional[str] = None
    stock: Decimal
    last_odoo_sync: Optional[datetime] = None


class ProposedState(BaseModel):
    """Only the fields present in the request are set"""
    location: Optional[str] = None
    stock: Optional[Decimal] = None
    has_location: bool = False


class OptimisticUpdateRecord(BaseModel):
    update_id: str
    product_id: UUID
    user_id: str
    device_id: str
    original_state: OriginalState
    proposed_state: ProposedState
    timestamp: int  # epoch ms when staged
    confirmed: bool = False
    rolled_back: bool = False
    rollback_reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return not self.confirmed and not self.rolled_back


class UndoRedoOperation(BaseModel):
    id: str
    product_id: UUID
    user_id: str
    device_id: str
    operation: str = "update"
    before_state: ProductState
    after_state: ProductState
    timestamp: int
    can_undo: bool = True
    can_redo: bool = False


class UndoRedoResult(BaseModel):
    success: bool
    operation: Optional[UndoRedoOperation] = None
    product: Optional[ProductSnapshot] = None
