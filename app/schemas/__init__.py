# Pydantic Schemas Package
from .product import (
    ProductSnapshot, ProductState, ProductUpdate, ProductSearchResult,
    ProductChanges, ProductUpdateResult, LocationHistoryItem, LocationOccupancy, CacheStats,
)
from .optimistic import OriginalState, ProposedState, OptimisticUpdateRecord, UndoRedoOperation, UndoRedoResult
from .sync import ConflictStrategy, ChangeType, Conflict, SyncResult, ConnectivityStatus, SyncStats
from .print_queue import JobPriority, JobStatus, PrintQueueItem, QueueStats, QueueStatus, PurgeResult
from .label import LabelData, LabelElement, LabelLayout, LabelResponse, LabelBatchResult, LabelStats

__all__ = [
    "ProductSnapshot", "ProductState", "ProductUpdate", "ProductSearchResult",
    "ProductChanges", "ProductUpdateResult", "LocationHistoryItem", "LocationOccupancy", "CacheStats",
    "OriginalState", "ProposedState", "OptimisticUpdateRecord", "UndoRedoOperation", "UndoRedoResult",
    "ConflictStrategy", "ChangeType", "Conflict", "SyncResult", "ConnectivityStatus", "SyncStats",
    "JobPriority", "JobStatus", "PrintQueueItem", "QueueStats", "QueueStatus", "PurgeResult",
    "LabelData", "LabelElement", "LabelLayout", "LabelResponse", "LabelBatchResult", "LabelStats",
]
