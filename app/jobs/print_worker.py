"""
Print Worker - Drains the print queue and hands rendered labels to the printer
"""
import asyncio
import json
import logging
import os
from typing import List, Optional
from uuid import UUID

from app.schemas.label import LabelLayout
from app.schemas.print_queue import PrintQueueItem
from app.services import LabelService, PrintQueueService

logger = logging.getLogger(__name__)


class SpoolPrinter:
    """
    Writes each job's layouts as one JSON file into the spool directory,
    where the label printer bridge picks them up.
    """

    def __init__(self, spool_dir: str):
        self.spool_dir = spool_dir

    def print_layouts(self, job: PrintQueueItem, layouts: List[LabelLayout]) -> str:
        os.makedirs(self.spool_dir, exist_ok=True)
        path = os.path.join(self.spool_dir, f"{job.id}.json")
        payload = {
            "job_id": job.id,
            "user_id": job.user_id,
            "device_id": job.device_id,
            "labels": [layout.model_dump() for layout in layouts],
        }
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.replace(tmp_path, path)
        return path


class PrintWorker:

    def __init__(
        self,
        print_queue: PrintQueueService,
        label_service: LabelService,
        printer: SpoolPrinter,
        idle_seconds: float = 2.0,
    ):
        self.print_queue = print_queue
        self.label_service = label_service
        self.printer = printer
        self.idle_seconds = idle_seconds
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    async def process_next(self) -> bool:
        """Process one job; False when the queue is empty"""
        job = await self.print_queue.dequeue_next()
        if job is None:
            return False

        try:
            layouts = self.label_service.render_batch(
                [UUID(label_id) for label_id in job.label_ids], job.user_id
            )
            if not layouts:
                raise ValueError("no printable labels in job")
            path = self.printer.print_layouts(job, layouts)
            await self.print_queue.complete(job.id)
            logger.info(f"Printed job {job.id}: {len(layouts)} labels -> {path}")
        except Exception as e:
            logger.error(f"Print job {job.id} failed: {e}")
            await self.print_queue.fail(job.id, str(e))
        return True

    async def run(self):
        logger.info("Print worker started")
        while not self._stopping:
            try:
                if not await self.process_next():
                    await asyncio.sleep(self.idle_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Print worker error: {e}")
                await asyncio.sleep(self.idle_seconds)
        logger.info("Print worker stopped")

    def start(self):
        if self._task is None:
            self._stopping = False
            self._task = asyncio.create_task(self.run())

    async def stop(self):
        self._stopping = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
