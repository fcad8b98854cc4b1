"""
Sync API - Trigger and monitor product synchronization with Odoo
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel
import logging

from app.core.exceptions import ColocacionError
from app.schemas.sync import (
    ChangeType,
    Conflict,
    ConflictStrategy,
    ConnectivityStatus,
    SyncResult,
    SyncStats,
)
from app.services import ServiceContainer
from .deps import Actor, get_actor, get_services, http_error

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger(__name__)


class PushRequest(BaseModel):
    change_type: ChangeType = ChangeType.BOTH


class ResolveConflictRequest(BaseModel):
    use_local: bool = False


@router.post("/product/{product_id}", response_model=SyncResult)
async def sync_product(
    product_id: UUID,
    strategy: ConflictStrategy = Query(ConflictStrategy.TIMESTAMP),
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return await services.sync.sync_product(product_id, actor.user_id, strategy)


@router.post("/push/{product_id}", response_model=SyncResult)
async def push_to_erp(
    product_id: UUID,
    data: PushRequest,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return await services.sync.push_to_erp(product_id, data.change_type, actor.user_id, actor.device_id)


@router.post("/full", response_model=SyncResult)
async def full_sync(
    max_items: int = Query(100, ge=1, le=1000),
    strategy: ConflictStrategy = Query(ConflictStrategy.TIMESTAMP),
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    logger.info(f"Full sync requested by {actor.user_id}")
    return await services.sync.full_sync(max_items=max_items, strategy=strategy)


@router.get("/connectivity", response_model=ConnectivityStatus)
async def connectivity(services: ServiceContainer = Depends(get_services)):
    return await services.sync.check_connectivity()


@router.get("/stats", response_model=SyncStats)
def sync_stats(
    days: int = Query(7, ge=1, le=90),
    services: ServiceContainer = Depends(get_services),
):
    return services.sync.sync_stats(days)


@router.get("/conflicts", response_model=List[Conflict])
async def list_conflicts(
    product_id: Optional[UUID] = Query(None),
    services: ServiceContainer = Depends(get_services),
):
    return await services.sync.list_conflicts(product_id)


@router.post("/conflicts/{product_id}/{field}/resolve")
async def resolve_conflict(
    product_id: UUID,
    field: str,
    data: ResolveConflictRequest,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        resolved = await services.sync.resolve_conflict(product_id, field, data.use_local, actor.user_id)
    except ColocacionError as e:
        raise http_error(e)
    if not resolved:
        raise HTTPException(status_code=404, detail="Conflict not found")
    logger.info(f"Conflict {product_id}:{field} resolved by {actor.user_id}")
    return {"success": True}
