"""
Print Queue Schemas
"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
import enum


class JobPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PrintQueueItem(BaseModel):
    id: str
    user_id: str
    device_id: str
    label_ids: List[str]
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.QUEUED
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class QueueStats(BaseModel):
    enqueued: int = 0
    completed: int = 0
    failed: int = 0
    retried: int = 0


class QueueStatus(BaseModel):
    queue_length: int = 0
    processing_count: int = 0
    stats: QueueStats = QueueStats()


class PurgeResult(BaseModel):
    queue_cleared: int = 0
    processing_cleared: int = 0
