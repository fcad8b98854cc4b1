# Services Package
from .product_store import ProductStore
from .cache_service import ProductCache
from .label_service import LabelService
from .optimistic_update_service import OptimisticUpdateService
from .print_queue_service import PrintQueueService
from .sync_service import SyncService
from .product_service import ProductService
from .container import ServiceContainer

__all__ = [
    "ProductStore",
    "ProductCache",
    "LabelService",
    "OptimisticUpdateService",
    "PrintQueueService",
    "SyncService",
    "ProductService",
    "ServiceContainer",
]
