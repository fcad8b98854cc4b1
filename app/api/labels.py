"""
Labels API - Pending shelf labels, printing and layout preview
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel
import logging

from app.core.exceptions import ColocacionError
from app.schemas.label import LabelResponse, LabelLayout, LabelBatchResult, LabelStats
from app.schemas.print_queue import JobPriority
from app.services import ServiceContainer
from .deps import Actor, get_actor, get_services, http_error

router = APIRouter(prefix="/labels", tags=["labels"])
logger = logging.getLogger(__name__)


class LabelIdsRequest(BaseModel):
    label_ids: List[UUID]


class PrintLabelsRequest(BaseModel):
    label_ids: List[UUID]
    priority: JobPriority = JobPriority.NORMAL


@router.get("/pending", response_model=List[LabelResponse])
def pending_labels(
    device_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return services.labels.pending_labels(actor.user_id, device_id)


@router.get("/stats", response_model=LabelStats)
def label_stats(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return services.labels.label_stats(actor.user_id)


@router.post("/delete", response_model=LabelBatchResult)
def delete_labels(
    data: LabelIdsRequest,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return services.labels.delete_labels(data.label_ids, actor.user_id)


@router.post("/print")
async def print_labels(
    data: PrintLabelsRequest,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Queue the user's labels for printing"""
    try:
        job_id = await services.print_queue.enqueue(
            [str(label_id) for label_id in data.label_ids],
            actor.user_id,
            actor.device_id,
            data.priority,
        )
    except ColocacionError as e:
        raise http_error(e)
    return {"success": True, "job_id": job_id}


@router.post("/mark-printed", response_model=LabelBatchResult)
def mark_printed(
    data: LabelIdsRequest,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return services.labels.mark_printed(data.label_ids, actor.user_id)


@router.get("/{label_id}/layout", response_model=LabelLayout)
def label_layout(
    label_id: UUID,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        layouts = services.labels.render_batch([label_id], actor.user_id)
    except ColocacionError as e:
        raise http_error(e)
    if not layouts:
        raise HTTPException(status_code=404, detail="Label not found")
    return layouts[0]
