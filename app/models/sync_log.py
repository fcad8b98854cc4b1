"""
Sync Log Model - Track full synchronization runs against Odoo
"""
from sqlalchemy import Column, String, DateTime, JSON, Integer
import enum

from app.core import Base
from app.core.time_utils import utcnow
from .base import UUIDMixin


class SyncStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class SyncLog(Base, UUIDMixin):
    """Log of full sync operations"""
    __tablename__ = "sync_log"

    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime)
    status = Column(String(20), default=SyncStatus.RUNNING.value, nullable=False)
    strategy = Column(String(20))

    processed = Column(Integer, default=0, nullable=False)
    updated = Column(Integer, default=0, nullable=False)
    failed = Column(Integer, default=0, nullable=False)
    duration_ms = Column(Integer, default=0, nullable=False)

    # First errors of the run: ["REF-1: timeout", ...]
    errors = Column(JSON, default=list)

    # Error message if the run itself failed
    error_message = Column(String(500))
