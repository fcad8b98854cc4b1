"""
Key/Value Store Models
Backing tables for the SQL implementation of the ephemeral store
"""
from sqlalchemy import Column, String, Text, Float, DateTime, Index, PrimaryKeyConstraint

from app.core import Base


class KeyValueEntry(Base):
    """Plain string, counter or hash value with optional expiry"""
    __tablename__ = "kv_entry"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=True, index=True)


class SortedSetMember(Base):
    """Member of a scored set (print queue)"""
    __tablename__ = "kv_sorted_set"

    key = Column(String(255), nullable=False)
    member = Column(String(255), nullable=False)
    score = Column(Float, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("key", "member"),
        Index("ix_kv_sorted_set_key_score", "key", "score"),
    )
