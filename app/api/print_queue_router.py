"""
Print Queue API - Queue status, user jobs and cancellation
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List
import logging

from app.schemas.print_queue import PrintQueueItem, QueueStatus, PurgeResult
from app.services import ServiceContainer
from .deps import Actor, get_actor, get_services

logger = logging.getLogger(__name__)

print_queue_router = APIRouter(prefix="/print-queue", tags=["print-queue"])


@print_queue_router.get("/status", response_model=QueueStatus)
async def queue_status(services: ServiceContainer = Depends(get_services)):
    return await services.print_queue.status()


@print_queue_router.get("/jobs", response_model=List[PrintQueueItem])
async def user_jobs(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return await services.print_queue.user_jobs(actor.user_id)


@print_queue_router.get("/jobs/{job_id}", response_model=PrintQueueItem)
async def get_job(
    job_id: str,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    job = await services.print_queue.get_job(job_id)
    if job is None or job.user_id != actor.user_id:
        raise HTTPException(status_code=404, detail="Print job not found")
    return job


@print_queue_router.delete("/jobs/{job_id}")
async def cancel_job(
    job_id: str,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    cancelled = await services.print_queue.cancel(job_id, actor.user_id)
    if not cancelled:
        raise HTTPException(status_code=404, detail="Print job not found or no longer cancellable")
    return {"success": True}


# ===================== ADMIN =====================

@print_queue_router.post("/admin/purge", response_model=PurgeResult)
async def purge_queue(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    logger.warning(f"Print queue purge requested by {actor.user_id}")
    return await services.print_queue.purge()


@print_queue_router.post("/admin/reset-stats")
async def reset_queue_stats(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    await services.print_queue.reset_stats()
    return {"success": True}
