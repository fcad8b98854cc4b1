"""
Print Queue Service - Priority queue of label print jobs

Jobs live under print_queue:job:<id>; the sorted set print_queue holds the
ids of queued jobs. A dequeued job takes a lease (print_queue:processing:<id>)
and must be completed or failed before it runs out, otherwise the cleanup
sweep fails it on the worker's behalf.
"""
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from app.core.exceptions import QueueError, ValidationError
from app.core.time_utils import utcnow, now_ms
from app.kv import codec
from app.kv.base import KeyValueStore
from app.schemas.print_queue import (
    JobPriority,
    JobStatus,
    PrintQueueItem,
    QueueStats,
    QueueStatus,
    PurgeResult,
)
from .label_service import LabelService

logger = logging.getLogger(__name__)

QUEUE_KEY = "print_queue"
JOB_PREFIX = "print_queue:job:"
PROCESSING_PREFIX = "print_queue:processing:"
STATS_KEY = "print_queue:stats"

PRIORITY_WEIGHTS = {
    JobPriority.LOW: 1,
    JobPriority.NORMAL: 5,
    JobPriority.HIGH: 10,
}
# Larger than any epoch-ms timestamp, so priority always dominates
PRIORITY_MULTIPLIER = 10 ** 14


def queue_score(priority: JobPriority, enqueued_ms: int) -> float:
    """Higher pops first: by priority, then oldest first"""
    return float(PRIORITY_WEIGHTS[priority] * PRIORITY_MULTIPLIER - enqueued_ms)


class PrintQueueService:

    def __init__(
        self,
        kv: KeyValueStore,
        label_service: LabelService,
        max_retries: int = 3,
        lease_seconds: int = 300,
        lease_grace_seconds: int = 60,
        retention_seconds: int = 86400,
    ):
        self.kv = kv
        self.label_service = label_service
        self.max_retries = max_retries
        self.lease_seconds = lease_seconds
        self.lease_grace_seconds = lease_grace_seconds
        self.retention_seconds = retention_seconds
        self._last_enqueue_ms = 0

    # ========== Job records ==========

    async def get_job(self, job_id: str) -> Optional[PrintQueueItem]:
        return codec.loads(PrintQueueItem, await self.kv.get(f"{JOB_PREFIX}{job_id}"))

    async def _save_job(self, job: PrintQueueItem, ttl: Optional[int] = None):
        await self.kv.set(f"{JOB_PREFIX}{job.id}", codec.dumps(job), ttl=ttl)

    def _next_enqueue_ms(self) -> int:
        # Strictly increasing so jobs enqueued within one millisecond keep FIFO order
        ms = max(now_ms(), self._last_enqueue_ms + 1)
        self._last_enqueue_ms = ms
        return ms

    async def _push(self, job: PrintQueueItem):
        await self.kv.zadd(QUEUE_KEY, job.id, queue_score(job.priority, self._next_enqueue_ms()))

    # ========== Queue operations ==========

    async def enqueue(
        self,
        label_ids: List[str],
        user_id: str,
        device_id: str,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> str:
        if not label_ids:
            raise ValidationError("A print job needs at least one label")

        job = PrintQueueItem(
            id=str(uuid4()),
            user_id=user_id,
            device_id=device_id,
            label_ids=[str(label_id) for label_id in label_ids],
            priority=JobPriority(priority),
            max_retries=self.max_retries,
            created_at=utcnow(),
        )
        try:
            await self._save_job(job)
            await self._push(job)
        except Exception as e:
            logger.error(f"Could not queue print job {job.id} for {user_id}: {e}")
            try:
                await self.kv.delete(f"{JOB_PREFIX}{job.id}")
            except Exception as cleanup_error:
                logger.error(f"Could not drop unqueued print job {job.id}: {cleanup_error}")
            raise QueueError(f"Could not queue print job: {e}") from e
        await self.kv.hincrby(STATS_KEY, "enqueued")

        logger.info(f"Print job {job.id} queued ({job.priority.value}, {len(job.label_ids)} labels) for {user_id}")
        return job.id

    async def dequeue_next(self) -> Optional[PrintQueueItem]:
        """Pop the highest priority job and lease it to the caller"""
        while True:
            popped = await self.kv.zpopmax(QUEUE_KEY)
            if popped is None:
                return None

            job_id, _ = popped
            job = await self.get_job(job_id)
            if job is None or job.status != JobStatus.QUEUED:
                logger.warning(f"Dropping stale queue entry {job_id}")
                continue

            job.status = JobStatus.PROCESSING
            await self._save_job(job)
            await self.kv.set(f"{PROCESSING_PREFIX}{job.id}", job.id, ttl=self.lease_seconds)
            logger.debug(f"Print job {job.id} leased for {self.lease_seconds}s")
            return job

    async def complete(self, job_id: str) -> bool:
        job = await self.get_job(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            logger.warning(f"Cannot complete print job {job_id}: not processing")
            return False

        self.label_service.mark_printed([UUID(label_id) for label_id in job.label_ids], job.user_id)

        await self.kv.delete(f"{PROCESSING_PREFIX}{job.id}")
        job.status = JobStatus.COMPLETED
        job.processed_at = utcnow()
        job.error_message = None
        await self._save_job(job, ttl=self.retention_seconds)
        await self.kv.hincrby(STATS_KEY, "completed")

        logger.info(f"Print job {job.id} completed")
        return True

    async def fail(self, job_id: str, error_message: str) -> bool:
        """Retry at normal priority until max_retries, then fail for good"""
        job = await self.get_job(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            logger.warning(f"Cannot fail print job {job_id}: not processing")
            return False

        await self.kv.delete(f"{PROCESSING_PREFIX}{job.id}")
        job.retry_count += 1
        job.error_message = error_message

        if job.retry_count < job.max_retries:
            job.status = JobStatus.QUEUED
            job.priority = JobPriority.NORMAL
            await self._save_job(job)
            await self._push(job)
            await self.kv.hincrby(STATS_KEY, "retried")
            logger.warning(f"Print job {job.id} retry {job.retry_count}/{job.max_retries}: {error_message}")
        else:
            job.status = JobStatus.FAILED
            job.processed_at = utcnow()
            await self._save_job(job, ttl=self.retention_seconds)
            await self.kv.hincrby(STATS_KEY, "failed")
            logger.error(f"Print job {job.id} failed after {job.retry_count} attempts: {error_message}")
        return True

    async def cancel(self, job_id: str, user_id: str) -> bool:
        job = await self.get_job(job_id)
        if job is None or job.user_id != user_id:
            return False

        if job.status == JobStatus.QUEUED:
            await self.kv.zrem(QUEUE_KEY, job.id)
        elif job.status == JobStatus.PROCESSING:
            if await self.kv.delete(f"{PROCESSING_PREFIX}{job.id}") == 0:
                # Lease already gone; the cleanup sweep owns this job now
                return False
        else:
            return False

        await self.kv.delete(f"{JOB_PREFIX}{job.id}")
        logger.info(f"Print job {job.id} cancelled by {user_id}")
        return True

    async def cleanup_expired(self) -> int:
        """Fail processing jobs whose lease is gone or about to run out"""
        handled = 0
        for key in await self.kv.keys(JOB_PREFIX):
            try:
                job = codec.loads(PrintQueueItem, await self.kv.get(key))
                if job is None or job.status != JobStatus.PROCESSING:
                    continue
                remaining = await self.kv.ttl(f"{PROCESSING_PREFIX}{job.id}")
                if remaining == -2 or 0 <= remaining < self.lease_grace_seconds:
                    if await self.fail(job.id, "processing timeout"):
                        handled += 1
            except Exception as e:
                logger.error(f"Error checking print lease {key}: {e}")

        if handled:
            logger.warning(f"Recovered {handled} print jobs with expired leases")
        return handled

    # ========== Status ==========

    async def stats(self) -> QueueStats:
        data = await self.kv.hgetall(STATS_KEY)
        return QueueStats(
            enqueued=int(data.get("enqueued", 0)),
            completed=int(data.get("completed", 0)),
            failed=int(data.get("failed", 0)),
            retried=int(data.get("retried", 0)),
        )

    async def status(self) -> QueueStatus:
        return QueueStatus(
            queue_length=await self.kv.zcard(QUEUE_KEY),
            processing_count=len(await self.kv.keys(PROCESSING_PREFIX)),
            stats=await self.stats(),
        )

    async def user_jobs(self, user_id: str) -> List[PrintQueueItem]:
        jobs = []
        for key in await self.kv.keys(JOB_PREFIX):
            job = codec.loads(PrintQueueItem, await self.kv.get(key))
            if job is not None and job.user_id == user_id:
                jobs.append(job)
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    # ========== Admin ==========

    async def reset_stats(self):
        await self.kv.delete(STATS_KEY)
        logger.info("Print queue stats reset")

    async def purge(self) -> PurgeResult:
        """Drop every queued and processing job"""
        result = PurgeResult()
        for job_id in await self.kv.zrange(QUEUE_KEY):
            await self.kv.delete(f"{JOB_PREFIX}{job_id}")
            result.queue_cleared += 1
        await self.kv.delete(QUEUE_KEY)

        for key in await self.kv.keys(PROCESSING_PREFIX):
            job_id = key[len(PROCESSING_PREFIX):]
            await self.kv.delete(key, f"{JOB_PREFIX}{job_id}")
            result.processing_cleared += 1

        logger.warning(f"Print queue purged: {result.queue_cleared} queued, {result.processing_cleared} processing")
        return result
