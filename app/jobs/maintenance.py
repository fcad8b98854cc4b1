"""
Maintenance Scheduler - Periodic sweeps over the product mirror and ephemeral state
"""
import asyncio
from datetime import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.services import ServiceContainer

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """
    Runs the full sync sweep, print lease recovery, optimistic update
    reaper, ERP connectivity check and label retention.
    """

    def __init__(self, services: ServiceContainer):
        self.services = services
        self.settings = services.settings
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.is_running:
            return

        self._add_jobs()
        self.scheduler.start()
        self.is_running = True
        logger.info("Maintenance scheduler started")

        # First connectivity check right away so problems show up at boot
        self.scheduler.add_job(
            func=self.check_connectivity,
            trigger="date",
            run_date=datetime.now(),
            id="init_connectivity",
            name="Initial ERP connectivity check",
            replace_existing=True,
        )

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Maintenance scheduler stopped")

    def _add_jobs(self):
        jobs = [
            (self.run_full_sync, IntervalTrigger(minutes=self.settings.FULL_SYNC_INTERVAL_MINUTES),
             "full_sync", "Full product sync"),
            (self.cleanup_print_queue, IntervalTrigger(minutes=self.settings.PRINT_CLEANUP_INTERVAL_MINUTES),
             "print_cleanup", "Print lease recovery"),
            (self.cleanup_optimistic_updates, IntervalTrigger(minutes=self.settings.OPTIMISTIC_CLEANUP_INTERVAL_MINUTES),
             "optimistic_cleanup", "Expired optimistic updates"),
            (self.check_connectivity, IntervalTrigger(minutes=self.settings.CONNECTIVITY_CHECK_INTERVAL_MINUTES),
             "erp_connectivity", "ERP connectivity check"),
            (self.cleanup_labels, CronTrigger(hour=3, minute=0),
             "label_retention", "Printed label retention"),
        ]
        for func, trigger, job_id, name in jobs:
            self.scheduler.add_job(
                func=func,
                trigger=trigger,
                id=job_id,
                name=name,
                replace_existing=True,
                max_instances=1,  # Prevent overlapping runs
            )
            logger.info(f"Scheduled job: {name} ({trigger})")

    # ========== Jobs ==========

    async def run_full_sync(self):
        try:
            result = await self.services.sync.full_sync(max_items=self.settings.FULL_SYNC_MAX_ITEMS)
            if not result.success:
                logger.warning(f"Scheduled full sync skipped: {', '.join(result.errors)}")
        except Exception as e:
            logger.error(f"Scheduled full sync failed: {e}")

    async def cleanup_print_queue(self):
        try:
            await self.services.print_queue.cleanup_expired()
        except Exception as e:
            logger.error(f"Print queue cleanup failed: {e}")

    async def cleanup_optimistic_updates(self):
        try:
            await self.services.optimistic.cleanup_expired()
        except Exception as e:
            logger.error(f"Optimistic update cleanup failed: {e}")

    async def check_connectivity(self):
        status = await self.services.sync.check_connectivity()
        if status.connected:
            logger.info(f"ERP reachable: {status.system_info}")
        else:
            logger.error(f"ERP unreachable: {status.error}")

    async def cleanup_labels(self):
        try:
            self.services.labels.cleanup_old_printed(self.settings.LABEL_RETENTION_DAYS)
        except Exception as e:
            logger.error(f"Label retention sweep failed: {e}")


# ========== CLI Commands ==========

if __name__ == "__main__":
    """
    Run one sweep standalone:
    python -m app.jobs.maintenance sync|print|optimistic|labels
    """
    import sys

    from app.core.config import settings
    from app.core.database import SessionLocal
    from app.core.logging_config import setup_logging

    setup_logging()
    command = sys.argv[1] if len(sys.argv) > 1 else "sync"
    maintenance = MaintenanceScheduler(ServiceContainer(settings, SessionLocal))

    commands = {
        "sync": maintenance.run_full_sync,
        "print": maintenance.cleanup_print_queue,
        "optimistic": maintenance.cleanup_optimistic_updates,
        "labels": maintenance.cleanup_labels,
        "connectivity": maintenance.check_connectivity,
    }
    if command not in commands:
        print(f"Unknown command: {command}. Use one of {', '.join(commands)}")
        sys.exit(1)

    asyncio.run(commands[command]())
