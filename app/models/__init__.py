from .base import TimestampMixin, UUIDMixin
from .product import Product, ProductStatus, ProductLocationHistory
from .label import ProductLabel
from .sync_log import SyncLog, SyncStatus
from .kv import KeyValueEntry, SortedSetMember

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Product
    "Product", "ProductStatus", "ProductLocationHistory",
    # Label
    "ProductLabel",
    # Sync
    "SyncLog", "SyncStatus",
    # Ephemeral store
    "KeyValueEntry", "SortedSetMember",
]
