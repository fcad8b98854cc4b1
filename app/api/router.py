"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from app.api.products import router as products_router
from app.api.sync import router as sync_router
from app.api.labels import router as labels_router
from app.api.print_queue_router import print_queue_router

api_router = APIRouter(tags=["API"])

api_router.include_router(products_router)
api_router.include_router(sync_router)
api_router.include_router(labels_router)
api_router.include_router(print_queue_router)

# ===================== HEALTH & STATUS =====================

@api_router.get("/status")
async def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
