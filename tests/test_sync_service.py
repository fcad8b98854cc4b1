import asyncio
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.exceptions import SyncPushError
from app.core.time_utils import utcnow
from app.integrations.base import ErpProduct, ErpConnectionError, ErpRpcError
from app.schemas.sync import ConflictStrategy, ChangeType


def erp_copy(product, **overrides) -> ErpProduct:
    fields = {
        "id": product.odoo_product_id,
        "default_code": product.reference,
        "name": product.description,
        "barcode": product.barcode,
        "qty_available": Decimal(product.stock),
        "active": True,
    }
    fields.update(overrides)
    return ErpProduct(**fields)


def test_erp_wins_overwrites_local_stock_and_invalidates_cache(services, erp, make_product):
    product = make_product(barcode="1234567890123", stock=Decimal("10"), location="A010")
    erp.products[product.odoo_product_id] = erp_copy(product, qty_available=Decimal("7"))

    async def scenario():
        await services.cache.put(product)
        result = await services.sync.sync_product(product.id, "tester", ConflictStrategy.ERP_WINS)

        assert result.success is True
        assert result.processed == 1
        assert result.updated == 1

        stored = services.store.find_by_id(product.id)
        assert stored.stock == Decimal("7")
        assert stored.location == "A010"
        assert stored.last_odoo_sync is not None
        assert await services.kv.get(f"colocacion:product:{product.barcode}") is None

    asyncio.run(scenario())


def test_second_sync_is_a_no_op(services, erp, make_product):
    product = make_product()
    erp.products[product.odoo_product_id] = erp_copy(product, name="Renamed in ERP")

    async def scenario():
        first = await services.sync.sync_product(product.id)
        synced_at = services.store.find_by_id(product.id).last_odoo_sync

        second = await services.sync.sync_product(product.id)
        assert first.updated == 1
        assert second.success is True
        assert second.updated == 0
        assert services.store.find_by_id(product.id).last_odoo_sync == synced_at

    asyncio.run(scenario())


def test_local_wins_leaves_record_untouched(services, erp, make_product):
    product = make_product()
    erp.products[product.odoo_product_id] = erp_copy(product, qty_available=Decimal("99"))

    async def scenario():
        result = await services.sync.sync_product(product.id, strategy=ConflictStrategy.LOCAL_WINS)
        assert result.success is True
        assert result.updated == 0
        stored = services.store.find_by_id(product.id)
        assert stored.stock == Decimal("10")
        assert stored.last_odoo_sync is None

    asyncio.run(scenario())


def test_inactive_in_erp_maps_to_inactive_status(services, erp, make_product):
    product = make_product()
    erp.products[product.odoo_product_id] = erp_copy(product, active=False)

    async def scenario():
        await services.sync.sync_product(product.id, strategy=ConflictStrategy.ERP_WINS)
        assert services.store.find_by_id(product.id).status == "inactive"

    asyncio.run(scenario())


def test_unknown_product_is_reported(services):
    result = asyncio.run(services.sync.sync_product(uuid4()))
    assert result.success is False
    assert result.processed == 0
    assert result.errors == ["product not found locally"]


def test_erp_error_is_reported_as_string(services, erp, make_product):
    product = make_product()
    erp.error = ErpConnectionError("Odoo timeout")

    result = asyncio.run(services.sync.sync_product(product.id))
    assert result.success is False
    assert result.failed == 1
    assert result.errors == ["Odoo timeout"]


def test_manual_strategy_stores_conflicts_for_resolution(services, erp, make_product):
    product = make_product()
    erp.products[product.odoo_product_id] = erp_copy(
        product, qty_available=Decimal("3"), name="ERP name"
    )

    async def scenario():
        result = await services.sync.sync_product(product.id, strategy=ConflictStrategy.MANUAL)
        assert result.success is False
        assert result.errors == ["unresolved conflicts"]

        conflicts = await services.sync.list_conflicts(product.id)
        assert sorted(c.field for c in conflicts) == ["description", "stock"]
        assert 86390 <= await services.kv.ttl(f"sync_conflicts:{product.id}:stock") <= 86400

        assert await services.sync.resolve_conflict(product.id, "stock", use_local=False) is True
        assert await services.sync.resolve_conflict(product.id, "description", use_local=True) is True
        assert await services.sync.list_conflicts(product.id) == []

        stored = services.store.find_by_id(product.id)
        assert stored.stock == Decimal("3")
        assert stored.description == product.description

    asyncio.run(scenario())


def test_full_sync_processes_stale_products_oldest_first(services, erp, make_product):
    never = make_product()
    old = make_product(last_odoo_sync=utcnow() - timedelta(hours=5))
    older = make_product(last_odoo_sync=utcnow() - timedelta(hours=10))
    fresh = make_product(last_odoo_sync=utcnow() - timedelta(minutes=5))
    make_product(status="inactive")
    for p in (never, old, older, fresh):
        erp.products[p.odoo_product_id] = erp_copy(p, qty_available=Decimal("1"))

    async def scenario():
        result = await services.sync.full_sync(max_items=10, strategy=ConflictStrategy.ERP_WINS)
        assert result.success is True
        assert result.processed == 3
        assert result.updated == 3
        assert result.failed == 0

        synced = [call[1] for call in erp.calls if call[0] == "get_product"]
        assert synced == [never.odoo_product_id, older.odoo_product_id, old.odoo_product_id]
        assert await services.kv.get("sync_lock") is None

    asyncio.run(scenario())


def test_full_sync_counts_item_failures_without_aborting(services, erp, make_product):
    missing = make_product(reference="MISSING")
    present = make_product()
    erp.products[present.odoo_product_id] = erp_copy(present)

    async def scenario():
        result = await services.sync.full_sync(max_items=10)
        assert result.success is True
        assert result.processed == 2
        assert result.failed == 1
        assert result.errors == ["MISSING: product not found in ERP"]

        stats = services.sync.sync_stats()
        assert stats.total_syncs == 1
        assert stats.successful_syncs == 1
        assert stats.products_failed == 1

    asyncio.run(scenario())


def test_concurrent_full_sync_is_rejected(services, erp, make_product):
    for _ in range(3):
        p = make_product()
        erp.products[p.odoo_product_id] = erp_copy(p)
    erp.delay = 0.01

    async def scenario():
        first, second = await asyncio.gather(
            services.sync.full_sync(max_items=10),
            services.sync.full_sync(max_items=10),
        )
        assert first.success is True
        assert first.processed == 3
        assert second.success is False
        assert second.errors == ["sync already in progress"]
        assert second.processed == 0

    asyncio.run(scenario())


def test_push_stamps_last_sync_only_when_every_write_succeeds(services, erp, make_product):
    product = make_product()
    erp.products[product.odoo_product_id] = erp_copy(product)

    async def scenario():
        erp.stock_error = ErpRpcError("inventory locked")
        failed = await services.sync.push_to_erp(product.id, ChangeType.BOTH, "tester", "pda-1")
        assert failed.success is False
        assert failed.errors == ["stock: inventory locked"]
        assert services.store.find_by_id(product.id).last_odoo_sync is None

        erp.stock_error = None
        ok = await services.sync.push_to_erp(product.id, ChangeType.LOCATION, "tester", "pda-1")
        assert ok.success is True
        assert ("update_location", product.odoo_product_id, "A010") in erp.calls
        assert services.store.find_by_id(product.id).last_odoo_sync is not None

    asyncio.run(scenario())


def test_check_connectivity(services, erp):
    async def scenario():
        status = await services.sync.check_connectivity()
        assert status.connected is True
        assert status.system_info == {"server_version": "16.0"}

        erp.error = ErpConnectionError("unreachable")
        status = await services.sync.check_connectivity()
        assert status.connected is False
        assert status.error == "unreachable"

    asyncio.run(scenario())


def test_full_sync_stops_when_another_sweep_takes_over_the_lock(clocked_services, clock, erp, make_product):
    services = clocked_services
    for _ in range(2):
        p = make_product()
        erp.products[p.odoo_product_id] = erp_copy(p)
    takeovers = []

    async def slow_first_item(name, *args):
        if name == "get_product" and not takeovers:
            clock.advance(31)
            takeovers.append(await services.kv.set_if_absent("sync_lock", "sweep-b", ttl=30))

    erp.on_call = slow_first_item

    async def scenario():
        result = await services.sync.full_sync(max_items=10)
        assert takeovers == [True]
        assert result.success is False
        assert result.processed == 1
        assert "sync lock lost" in result.errors
        assert await services.kv.get("sync_lock") == "sweep-b"

    asyncio.run(scenario())


def test_full_sync_keeps_its_lock_past_the_ttl(clocked_services, clock, erp, make_product):
    services = clocked_services
    for _ in range(3):
        p = make_product()
        erp.products[p.odoo_product_id] = erp_copy(p)
    competing = []

    async def slow_item(name, *args):
        if name == "get_product":
            clock.advance(20)
            competing.append(await services.kv.set_if_absent("sync_lock", "sweep-b", ttl=30))

    erp.on_call = slow_item

    async def scenario():
        result = await services.sync.full_sync(max_items=10)
        assert competing == [False, False, False]
        assert result.success is True
        assert result.processed == 3
        assert await services.kv.get("sync_lock") is None

    asyncio.run(scenario())


def test_keeping_local_stock_pushes_it_to_the_erp(services, erp, make_product):
    product = make_product(stock=Decimal("10"))
    erp.products[product.odoo_product_id] = erp_copy(product, qty_available=Decimal("3"))

    async def scenario():
        await services.sync.sync_product(product.id, strategy=ConflictStrategy.MANUAL)
        assert await services.sync.resolve_conflict(product.id, "stock", use_local=True, user_id="u1") is True

        assert ("update_stock", product.odoo_product_id, Decimal("10")) in erp.calls
        assert erp.products[product.odoo_product_id].qty_available == Decimal("10")
        assert services.store.find_by_id(product.id).last_odoo_sync is not None
        assert await services.sync.list_conflicts(product.id) == []

        again = await services.sync.sync_product(product.id, strategy=ConflictStrategy.MANUAL)
        assert again.success is True
        assert again.updated == 0
        assert services.store.find_by_id(product.id).stock == Decimal("10")

    asyncio.run(scenario())


def test_failed_stock_push_keeps_the_conflict(services, erp, make_product):
    product = make_product(stock=Decimal("10"))
    erp.products[product.odoo_product_id] = erp_copy(product, qty_available=Decimal("3"))

    async def scenario():
        await services.sync.sync_product(product.id, strategy=ConflictStrategy.MANUAL)
        erp.stock_error = ErpRpcError("inventory locked")

        with pytest.raises(SyncPushError, match="inventory locked"):
            await services.sync.resolve_conflict(product.id, "stock", use_local=True)

        conflicts = await services.sync.list_conflicts(product.id)
        assert [c.field for c in conflicts] == ["stock"]
        assert services.store.find_by_id(product.id).last_odoo_sync is None

    asyncio.run(scenario())
