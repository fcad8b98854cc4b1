"""
Service Container - Builds every service once with explicit dependencies
"""
from typing import Callable, Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.integrations import BaseErpClient, OdooClient
from app.kv import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from .cache_service import ProductCache
from .label_service import LabelService
from .optimistic_update_service import OptimisticUpdateService
from .print_queue_service import PrintQueueService
from .product_service import ProductService
from .product_store import ProductStore
from .sync_service import SyncService

logger = logging.getLogger(__name__)


class ServiceContainer:

    def __init__(
        self,
        settings: Settings,
        session_factory: Callable[[], Session],
        kv: Optional[KeyValueStore] = None,
        erp_client: Optional[BaseErpClient] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory

        if kv is None:
            if settings.KV_BACKEND == "memory":
                kv = MemoryKeyValueStore()
            else:
                kv = SqlKeyValueStore(session_factory)
        self.kv = kv

        if erp_client is None:
            erp_client = OdooClient(
                url=settings.ODOO_URL,
                database=settings.ODOO_DATABASE,
                username=settings.ODOO_USERNAME,
                password=settings.ODOO_PASSWORD,
                timeout=settings.ODOO_TIMEOUT_SECONDS,
                session_ttl=settings.ODOO_SESSION_TTL_SECONDS,
            )
        self.erp_client = erp_client

        self.store = ProductStore(session_factory)
        self.cache = ProductCache(
            kv,
            ttl=settings.CACHE_TTL_SECONDS,
            frequent_ttl=settings.CACHE_FREQUENT_TTL_SECONDS,
            frequent_threshold=settings.CACHE_FREQUENT_THRESHOLD,
            frequency_window=settings.CACHE_FREQUENCY_WINDOW_SECONDS,
        )
        self.labels = LabelService(session_factory)
        self.optimistic = OptimisticUpdateService(
            kv,
            self.store,
            self.cache,
            update_ttl=settings.OPTIMISTIC_UPDATE_TTL_SECONDS,
            undo_redo_ttl=settings.UNDO_REDO_TTL_SECONDS,
            max_operations=settings.UNDO_REDO_MAX_OPERATIONS,
        )
        self.print_queue = PrintQueueService(
            kv,
            self.labels,
            max_retries=settings.PRINT_MAX_RETRIES,
            lease_seconds=settings.PRINT_LEASE_SECONDS,
            lease_grace_seconds=settings.PRINT_LEASE_GRACE_SECONDS,
            retention_seconds=settings.PRINT_JOB_RETENTION_SECONDS,
        )
        self.sync = SyncService(
            erp_client,
            self.store,
            self.cache,
            kv,
            session_factory,
            lock_ttl=settings.SYNC_LOCK_TTL_SECONDS,
            stale_after_minutes=settings.SYNC_STALE_AFTER_MINUTES,
            item_delay=settings.SYNC_ITEM_DELAY_SECONDS,
            conflict_ttl=settings.SYNC_CONFLICT_TTL_SECONDS,
        )
        self.products = ProductService(
            self.store,
            self.cache,
            self.optimistic,
            self.labels,
            self.print_queue,
            kv,
            confirmation_ttl=settings.CONFIRMATION_TOKEN_TTL_SECONDS,
        )
        logger.info(f"Services ready (kv={type(kv).__name__}, erp={type(erp_client).__name__})")

    async def close(self):
        await self.kv.close()
