"""
SQL-backed Key/Value Store
Keeps ephemeral state in the application database so that every API worker
and the scheduler share it. Expired rows are ignored on read and removed lazily.
"""
import json
import logging
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.time_utils import utcnow
from app.models.kv import KeyValueEntry, SortedSetMember
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class SqlKeyValueStore(KeyValueStore):

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _live_entry(self, db: Session, key: str) -> Optional[KeyValueEntry]:
        entry = db.get(KeyValueEntry, key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= utcnow():
            db.delete(entry)
            db.flush()
            return None
        return entry

    @staticmethod
    def _expiry(ttl: Optional[int]):
        return utcnow() + timedelta(seconds=ttl) if ttl is not None else None

    @staticmethod
    def _locked_entry_query(db: Session, key: str):
        return db.query(KeyValueEntry).filter(KeyValueEntry.key == key).with_for_update()

    def _update_counter(self, key: str, empty: str, change: Callable[[str], Tuple[str, int]]) -> int:
        """Read-modify-write of a counter row while holding its row lock.

        An expired row counts as missing: it restarts from `empty` without a TTL.
        Losing the race to create the row retries once against the winner's row.
        """
        for attempt in range(2):
            db = self.session_factory()
            try:
                entry = self._locked_entry_query(db, key).first()
                if entry is None:
                    entry = KeyValueEntry(key=key, value=empty)
                    db.add(entry)
                elif entry.expires_at is not None and entry.expires_at <= utcnow():
                    entry.value = empty
                    entry.expires_at = None
                entry.value, result = change(entry.value or empty)
                db.commit()
                return result
            except IntegrityError:
                db.rollback()
                if attempt:
                    raise
                logger.debug(f"Counter {key} created concurrently, retrying")
            finally:
                db.close()

    # ========== Strings ==========

    async def get(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            entry = self._live_entry(db, key)
            db.commit()
            return entry.value if entry else None
        finally:
            db.close()

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        db = self.session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                entry = KeyValueEntry(key=key)
                db.add(entry)
            entry.value = value
            entry.expires_at = self._expiry(ttl)
            db.commit()
        finally:
            db.close()

    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        db = self.session_factory()
        try:
            if self._live_entry(db, key) is not None:
                db.rollback()
                return False
            db.add(KeyValueEntry(key=key, value=value, expires_at=self._expiry(ttl)))
            db.commit()
            return True
        except IntegrityError:
            # Another worker inserted the key between our read and write
            db.rollback()
            return False
        finally:
            db.close()

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        db = self.session_factory()
        try:
            deleted = db.query(KeyValueEntry).filter(
                KeyValueEntry.key.in_(keys)
            ).delete(synchronize_session=False)
            zdeleted = db.query(SortedSetMember.key).filter(
                SortedSetMember.key.in_(keys)
            ).distinct().count()
            db.query(SortedSetMember).filter(
                SortedSetMember.key.in_(keys)
            ).delete(synchronize_session=False)
            db.commit()
            return deleted + zdeleted
        finally:
            db.close()

    async def keys(self, prefix: str) -> List[str]:
        db = self.session_factory()
        try:
            now = utcnow()
            rows = db.query(KeyValueEntry.key).filter(
                KeyValueEntry.key.startswith(prefix, autoescape=True),
                or_(KeyValueEntry.expires_at.is_(None), KeyValueEntry.expires_at > now),
            ).all()
            zrows = db.query(SortedSetMember.key).filter(
                SortedSetMember.key.startswith(prefix, autoescape=True)
            ).distinct().all()
            return sorted({r[0] for r in rows} | {r[0] for r in zrows})
        finally:
            db.close()

    async def incr(self, key: str, amount: int = 1) -> int:
        def change(value: str):
            current = int(value) + amount
            return str(current), current

        return self._update_counter(key, "0", change)

    async def expire(self, key: str, ttl: int) -> bool:
        db = self.session_factory()
        try:
            entry = self._live_entry(db, key)
            if entry is None:
                db.commit()
                return False
            entry.expires_at = self._expiry(ttl)
            db.commit()
            return True
        finally:
            db.close()

    async def ttl(self, key: str) -> int:
        db = self.session_factory()
        try:
            entry = self._live_entry(db, key)
            db.commit()
            if entry is None:
                return -2
            if entry.expires_at is None:
                return -1
            return max(0, int(round((entry.expires_at - utcnow()).total_seconds())))
        finally:
            db.close()

    # ========== Hashes ==========

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        def change(value: str):
            data = json.loads(value)
            current = int(data.get(field, "0")) + amount
            data[field] = str(current)
            return json.dumps(data), current

        return self._update_counter(key, "{}", change)

    async def hgetall(self, key: str) -> Dict[str, str]:
        raw = await self.get(key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"Key {key} does not hold a hash")
            return {}
        return data if isinstance(data, dict) else {}

    # ========== Sorted sets ==========

    async def zadd(self, key: str, member: str, score: float) -> None:
        db = self.session_factory()
        try:
            row = db.get(SortedSetMember, (key, member))
            if row is None:
                db.add(SortedSetMember(key=key, member=member, score=score))
            else:
                row.score = score
            db.commit()
        finally:
            db.close()

    async def zpopmax(self, key: str) -> Optional[Tuple[str, float]]:
        db = self.session_factory()
        try:
            row = db.query(SortedSetMember).filter(
                SortedSetMember.key == key
            ).order_by(
                SortedSetMember.score.desc(), SortedSetMember.member.desc()
            ).with_for_update(skip_locked=True).first()
            if row is None:
                db.rollback()
                return None
            result = (row.member, row.score)
            db.delete(row)
            db.commit()
            return result
        finally:
            db.close()

    async def zrange(self, key: str) -> List[str]:
        db = self.session_factory()
        try:
            rows = db.query(SortedSetMember.member).filter(
                SortedSetMember.key == key
            ).order_by(SortedSetMember.score.asc(), SortedSetMember.member.asc()).all()
            return [r[0] for r in rows]
        finally:
            db.close()

    async def zrem(self, key: str, member: str) -> bool:
        db = self.session_factory()
        try:
            removed = db.query(SortedSetMember).filter(
                SortedSetMember.key == key,
                SortedSetMember.member == member,
            ).delete(synchronize_session=False)
            db.commit()
            return removed > 0
        finally:
            db.close()

    async def zcard(self, key: str) -> int:
        db = self.session_factory()
        try:
            return db.query(SortedSetMember).filter(SortedSetMember.key == key).count()
        finally:
            db.close()
