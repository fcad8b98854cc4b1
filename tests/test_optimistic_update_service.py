import asyncio
from decimal import Decimal

import pytest

from app.core.exceptions import ProductBusyError
from app.core.time_utils import now_ms
from app.kv import codec
from app.schemas.optimistic import ProposedState
from app.schemas.product import ProductUpdate


def apply_and_save(services, product, proposed: ProposedState):
    if proposed.has_location:
        product.location = proposed.location
    if proposed.stock is not None:
        product.stock = proposed.stock
    return services.store.save(product)


def test_stage_does_not_touch_the_product(services, make_product):
    product = make_product()

    async def scenario():
        update_id = await services.optimistic.stage(
            product, ProposedState(stock=Decimal("4")), "u1", "d1"
        )
        record = await services.optimistic.get_record(update_id)
        assert record.is_pending
        assert record.original_state.stock == Decimal("10")
        assert services.store.find_by_id(product.id).stock == Decimal("10")

    asyncio.run(scenario())


def test_confirm_pushes_undo_operation_and_is_single_use(services, make_product):
    product = make_product()

    async def scenario():
        proposed = ProposedState(location="B215", has_location=True)
        update_id = await services.optimistic.stage(product, proposed, "u1", "d1")
        apply_and_save(services, product, proposed)

        assert await services.optimistic.confirm(update_id) is True
        assert await services.optimistic.confirm(update_id) is False
        assert await services.optimistic.rollback(update_id) is False

        history = await services.optimistic.history("u1", "d1")
        assert len(history) == 1
        assert history[0].before_state.location == "A010"
        assert history[0].after_state.location == "B215"
        assert history[0].after_state.stock == Decimal("10")
        assert history[0].can_undo is True
        assert history[0].can_redo is False

    asyncio.run(scenario())


def test_rollback_restores_snapshot(services, make_product):
    product = make_product()

    async def scenario():
        proposed = ProposedState(stock=Decimal("0"))
        update_id = await services.optimistic.stage(product, proposed, "u1", "d1")
        apply_and_save(services, product, proposed)
        assert services.store.find_by_id(product.id).stock == Decimal("0")

        assert await services.optimistic.rollback(update_id) is True
        assert services.store.find_by_id(product.id).stock == Decimal("10")

        record = await services.optimistic.get_record(update_id)
        assert record.rolled_back is True
        assert record.rollback_reason == "Error en la actualización"
        assert await services.optimistic.confirm(update_id) is False
        assert await services.optimistic.history("u1", "d1") == []

    asyncio.run(scenario())


def test_unknown_update_ids(services):
    async def scenario():
        assert await services.optimistic.confirm("nope") is False
        assert await services.optimistic.rollback("nope", "x") is False

    asyncio.run(scenario())


def test_second_device_cannot_stage_while_product_is_held(services, make_product):
    product = make_product()

    async def scenario():
        update_id = await services.optimistic.stage(product, ProposedState(stock=Decimal("1")), "u1", "d1")
        with pytest.raises(ProductBusyError):
            await services.optimistic.stage(product, ProposedState(stock=Decimal("2")), "u2", "d2")

        await services.optimistic.confirm(update_id)
        other = await services.optimistic.stage(product, ProposedState(stock=Decimal("2")), "u2", "d2")
        assert other != update_id

    asyncio.run(scenario())


def test_undo_then_redo_round_trips_the_product(services, make_product):
    product = make_product()

    async def scenario():
        proposed = ProposedState(location="C301", stock=Decimal("25"), has_location=True)
        update_id = await services.optimistic.stage(product, proposed, "u1", "d1")
        apply_and_save(services, product, proposed)
        await services.optimistic.confirm(update_id)

        undone = await services.optimistic.undo("u1", "d1")
        assert undone.success is True
        assert undone.product.location == "A010"
        assert undone.product.stock == Decimal("10")
        assert undone.operation.can_undo is False
        assert undone.operation.can_redo is True
        assert (await services.optimistic.undo("u1", "d1")).success is False

        redone = await services.optimistic.redo("u1", "d1")
        assert redone.success is True
        assert redone.product.location == "C301"
        assert redone.product.stock == Decimal("25")
        assert redone.product.last_odoo_sync is not None
        assert (await services.optimistic.redo("u1", "d1")).success is False

    asyncio.run(scenario())


def test_new_confirm_clears_pending_redo(services, make_product):
    product = make_product()

    async def scenario():
        for stock in ("11", "12"):
            current = services.store.find_by_id(product.id)
            proposed = ProposedState(stock=Decimal(stock))
            update_id = await services.optimistic.stage(current, proposed, "u1", "d1")
            apply_and_save(services, current, proposed)
            await services.optimistic.confirm(update_id)

            if stock == "11":
                await services.optimistic.undo("u1", "d1")

        history = await services.optimistic.history("u1", "d1")
        assert [op.can_redo for op in history] == [False, False]
        assert (await services.optimistic.redo("u1", "d1")).success is False

    asyncio.run(scenario())


def test_history_is_bounded_to_ten_operations(services, make_product):
    product = make_product()

    async def scenario():
        for i in range(12):
            current = services.store.find_by_id(product.id)
            proposed = ProposedState(stock=Decimal(20 + i))
            update_id = await services.optimistic.stage(current, proposed, "u1", "d1")
            apply_and_save(services, current, proposed)
            await services.optimistic.confirm(update_id)

        history = await services.optimistic.history("u1", "d1")
        assert len(history) == 10
        assert history[0].after_state.stock == Decimal("31")
        assert await services.optimistic.history("u1", "other-device") == []

    asyncio.run(scenario())


def test_cleanup_rolls_back_expired_staged_updates(services, make_product):
    stale = make_product()
    recent = make_product()

    async def scenario():
        stale_id = await services.optimistic.stage(stale, ProposedState(stock=Decimal("1")), "u1", "d1")
        recent_id = await services.optimistic.stage(recent, ProposedState(stock=Decimal("1")), "u1", "d1")

        record = await services.optimistic.get_record(stale_id)
        record.timestamp = now_ms() - 301_000
        await services.kv.set(f"optimistic_update:{stale_id}", codec.dumps(record), ttl=600)

        assert await services.optimistic.cleanup_expired() == 1

        expired = await services.optimistic.get_record(stale_id)
        assert expired.rolled_back is True
        assert expired.rollback_reason == "expired"
        assert (await services.optimistic.get_record(recent_id)).is_pending
        assert await services.kv.get(f"optimistic_lock:{stale.id}") is None

    asyncio.run(scenario())


async def age_record(services, update_id, seconds=301):
    record = await services.optimistic.get_record(update_id)
    record.timestamp = now_ms() - seconds * 1000
    await services.kv.set(f"optimistic_update:{update_id}", codec.dumps(record), ttl=299)


def test_crashed_device_keeps_product_held_until_reaped(clocked_services, clock, make_product):
    services = clocked_services
    product = make_product(location="A010")

    async def scenario():
        # Device 1 writes but never confirms
        proposed = ProposedState(location="B215", has_location=True)
        stale_id = await services.optimistic.stage(product, proposed, "u1", "d1")
        apply_and_save(services, product, proposed)

        clock.advance(301)
        with pytest.raises(ProductBusyError):
            await services.products.update_product(product.id, ProductUpdate(location="C333"), "u2", "d2")

        await age_record(services, stale_id)
        assert await services.optimistic.cleanup_expired() == 1
        assert services.store.find_by_id(product.id).location == "A010"
        assert await services.kv.get(f"optimistic_lock:{product.id}") is None

        result = await services.products.update_product(product.id, ProductUpdate(location="C333"), "u2", "d2")
        assert result.product.location == "C333"
        assert await services.optimistic.cleanup_expired() == 0
        assert services.store.find_by_id(product.id).location == "C333"

    asyncio.run(scenario())


def test_reaper_leaves_newer_write_alone_when_lock_was_lost(clocked_services, make_product):
    services = clocked_services
    product = make_product(location="A010")

    async def scenario():
        proposed = ProposedState(location="B215", has_location=True)
        stale_id = await services.optimistic.stage(product, proposed, "u1", "d1")
        apply_and_save(services, product, proposed)
        await services.kv.delete(f"optimistic_lock:{product.id}")

        await services.products.update_product(product.id, ProductUpdate(location="C333"), "u2", "d2")

        await age_record(services, stale_id)
        assert await services.optimistic.cleanup_expired() == 1
        assert services.store.find_by_id(product.id).location == "C333"

        record = await services.optimistic.get_record(stale_id)
        assert record.rolled_back is True
        assert record.rollback_reason == "expired"

    asyncio.run(scenario())
