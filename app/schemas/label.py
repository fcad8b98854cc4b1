"""
Label Schemas
"""
from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class LabelData(BaseModel):
    reference: str
    description: str
    location: str
    barcode: str


class LabelElement(BaseModel):
    type: str  # text, barcode
    content: str
    x: float
    y: float
    width: float = 0
    height: float = 0
    font_size: Optional[int] = None
    font_weight: Optional[str] = None  # normal, bold
    alignment: Optional[str] = None  # left, center, right


class LabelLayout(BaseModel):
    """Device independent layout, millimetres"""
    width: float
    height: float
    elements: List[LabelElement]


class LabelResponse(BaseModel):
    id: UUID
    product_id: UUID
    barcode: str
    reference: str
    description: str
    location: str
    created_by: str
    device_identifier: str
    is_printed: bool
    printed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LabelBatchResult(BaseModel):
    processed: int = 0
    errors: List[str] = []


class LabelStats(BaseModel):
    total_labels: int = 0
    pending_labels: int = 0
    printed_labels: int = 0
    labels_today: int = 0
