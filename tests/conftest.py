"""
Pytest fixtures for Colocacion tests.

Provides an in-memory database per test, the in-process key/value store,
a scriptable ERP client and a fully wired service container.
"""
import asyncio
import os
from decimal import Decimal
from typing import Any, Dict, Optional

# Configure before the app modules read settings
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")
os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("PRINT_WORKER_ENABLED", "false")
os.environ.setdefault("SYNC_ITEM_DELAY_SECONDS", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import Base
from app.core.config import Settings
from app.integrations.base import BaseErpClient, ErpProduct
from app.kv import MemoryKeyValueStore
from app.models import Product, ProductStatus
from app.services import ServiceContainer


class FakeClock:
    """Manually advanced clock for TTL tests"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeErpClient(BaseErpClient):
    """In-memory ERP; set `error` to make every call raise it"""
    ERP_NAME = "fake"

    def __init__(self):
        super().__init__()
        self.products: Dict[int, ErpProduct] = {}
        self.error: Optional[Exception] = None
        self.location_error: Optional[Exception] = None
        self.stock_error: Optional[Exception] = None
        self.delay: float = 0
        # async hook run on every call, before any scripted failure
        self.on_call = None
        self.calls = []

    async def login(self) -> int:
        return 1

    async def _maybe_fail(self, name: str, *args):
        self.calls.append((name,) + args)
        if self.on_call:
            await self.on_call(name, *args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

    async def get_product(self, erp_id: int) -> Optional[ErpProduct]:
        await self._maybe_fail("get_product", erp_id)
        return self.products.get(erp_id)

    async def search_product_by_barcode(self, barcode: str) -> Optional[ErpProduct]:
        await self._maybe_fail("search_product_by_barcode", barcode)
        return next((p for p in self.products.values() if p.barcode == barcode), None)

    async def update_stock(self, erp_id: int, quantity: Decimal) -> bool:
        await self._maybe_fail("update_stock", erp_id, quantity)
        if self.stock_error:
            raise self.stock_error
        self.products[erp_id].qty_available = Decimal(quantity)
        return True

    async def update_location(self, erp_id: int, location_code: str) -> bool:
        await self._maybe_fail("update_location", erp_id, location_code)
        if self.location_error:
            raise self.location_error
        return True

    async def test_connection(self) -> bool:
        await self._maybe_fail("test_connection")
        return True

    async def get_system_info(self) -> Dict[str, Any]:
        await self._maybe_fail("get_system_info")
        return {"server_version": "16.0"}


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def kv():
    return MemoryKeyValueStore()


@pytest.fixture(scope="function")
def erp():
    return FakeErpClient()


@pytest.fixture(scope="function")
def settings():
    return Settings(
        KV_BACKEND="memory",
        SCHEDULER_ENABLED=False,
        PRINT_WORKER_ENABLED=False,
        SYNC_ITEM_DELAY_SECONDS=0,
    )


@pytest.fixture(scope="function")
def services(settings, session_factory, kv, erp):
    return ServiceContainer(settings, session_factory, kv=kv, erp_client=erp)


@pytest.fixture(scope="function")
def clocked_services(settings, session_factory, clock, erp):
    """Container whose key/value TTLs follow `clock`"""
    return ServiceContainer(settings, session_factory, kv=MemoryKeyValueStore(clock=clock), erp_client=erp)


@pytest.fixture(scope="function")
def make_product(session_factory):
    """Create a product row; returns it detached"""
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "odoo_product_id": 1000 + n,
            "barcode": f"{1234567890120 + n}",
            "reference": f"REF-{n:03d}",
            "description": f"Test product {n}",
            "location": "A010",
            "stock": Decimal("10"),
            "status": ProductStatus.ACTIVE,
        }
        fields.update(overrides)
        db = session_factory()
        try:
            product = Product(**fields)
            db.add(product)
            db.commit()
            return product
        finally:
            db.close()

    return _make
