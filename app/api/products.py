"""
Products API - Barcode search, placement updates and undo/redo
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List
from uuid import UUID
import logging

from app.core.exceptions import ColocacionError
from app.schemas.optimistic import UndoRedoOperation, UndoRedoResult
from app.schemas.product import (
    ProductSnapshot,
    ProductUpdate,
    ProductSearchResult,
    ProductUpdateResult,
    LocationHistoryItem,
    LocationOccupancy,
    CacheStats,
)
from app.services import ServiceContainer
from .deps import Actor, get_actor, get_services, http_error

router = APIRouter(prefix="/products", tags=["products"])
logger = logging.getLogger(__name__)


# ===================== SEARCH =====================

@router.get("/search/{barcode}", response_model=ProductSearchResult)
async def search_product(
    barcode: str,
    services: ServiceContainer = Depends(get_services),
):
    try:
        result = await services.products.search_by_barcode(barcode)
    except ColocacionError as e:
        raise http_error(e)
    if not result.found:
        raise HTTPException(status_code=404, detail="Product not found")
    return result


@router.get("/location/{location}", response_model=LocationOccupancy)
def products_by_location(
    location: str,
    services: ServiceContainer = Depends(get_services),
):
    try:
        return services.products.products_by_location(location)
    except ColocacionError as e:
        raise http_error(e)


# ===================== UNDO / REDO =====================

@router.post("/undo", response_model=UndoRedoResult)
async def undo(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    result = await services.optimistic.undo(actor.user_id, actor.device_id)
    if not result.success:
        raise HTTPException(status_code=400, detail="Nothing to undo")
    return result


@router.post("/redo", response_model=UndoRedoResult)
async def redo(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    result = await services.optimistic.redo(actor.user_id, actor.device_id)
    if not result.success:
        raise HTTPException(status_code=400, detail="Nothing to redo")
    return result


@router.get("/undo-redo/history", response_model=List[UndoRedoOperation])
async def undo_redo_history(
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    return await services.optimistic.history(actor.user_id, actor.device_id)


# ===================== CACHE =====================

@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(services: ServiceContainer = Depends(get_services)):
    return await services.cache.stats()


@router.get("/cache/frequent")
async def frequent_products(
    limit: int = Query(20, ge=1, le=100),
    services: ServiceContainer = Depends(get_services),
):
    return {"products": await services.cache.frequent_products(limit)}


@router.delete("/cache")
async def clear_cache(services: ServiceContainer = Depends(get_services)):
    cleared = await services.cache.clear()
    return {"success": True, "cleared": cleared}


@router.post("/cache/reset-stats")
async def reset_cache_stats(services: ServiceContainer = Depends(get_services)):
    await services.cache.reset_stats()
    return {"success": True}


# ===================== PRODUCT =====================

@router.get("/{product_id}", response_model=ProductSnapshot)
def get_product(
    product_id: UUID,
    services: ServiceContainer = Depends(get_services),
):
    try:
        return services.products.get_product(product_id)
    except ColocacionError as e:
        raise http_error(e)


@router.put("/{product_id}", response_model=ProductUpdateResult)
async def update_product(
    product_id: UUID,
    data: ProductUpdate,
    actor: Actor = Depends(get_actor),
    services: ServiceContainer = Depends(get_services),
):
    try:
        return await services.products.update_product(product_id, data, actor.user_id, actor.device_id)
    except ColocacionError as e:
        raise http_error(e)


@router.get("/{product_id}/location-history", response_model=List[LocationHistoryItem])
def location_history(
    product_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    services: ServiceContainer = Depends(get_services),
):
    try:
        return services.products.location_history(product_id, limit)
    except ColocacionError as e:
        raise http_error(e)
