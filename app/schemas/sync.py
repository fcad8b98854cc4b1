"""
Sync Schemas
"""
from pydantic import BaseModel
from typing import Optional, List, Any, Dict
from uuid import UUID
from datetime import datetime
import enum


class ConflictStrategy(str, enum.Enum):
    ERP_WINS = "erp_wins"
    LOCAL_WINS = "local_wins"
    TIMESTAMP = "timestamp"
    MANUAL = "manual"


class ChangeType(str, enum.Enum):
    LOCATION = "location"
    STOCK = "stock"
    BOTH = "both"


class Conflict(BaseModel):
    product_id: UUID
    field: str
    local_value: Any = None
    erp_value: Any = None
    local_timestamp: Optional[datetime] = None
    erp_timestamp: datetime
    user_id: Optional[str] = None
    resolution: str = "pending"  # pending, resolved


class SyncResult(BaseModel):
    success: bool = False
    processed: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = []
    duration_ms: int = 0


class ConnectivityStatus(BaseModel):
    connected: bool
    system_info: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SyncStats(BaseModel):
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    products_processed: int = 0
    products_updated: int = 0
    products_failed: int = 0
    last_sync: Optional[datetime] = None
