from contextlib import asynccontextmanager
from functools import partial

import pytest

pytest.importorskip("aiosqlite")

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from application.services.effect_dispatcher import EffectDispatcher, JobType
from application.services.idempotency import IdempotencyStore
from application.services.job_queue import JobQueue
from application.services.order_engine import OrderEngine
from domain.common.exceptions import ConcurrentModificationError
from domain.jobs.entity import JobStatus
from domain.order.entity import OrderStatus
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@asynccontextmanager
async def sqlite_uow_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield partial(SQLAlchemyUnitOfWork, session_factory)
    finally:
        await engine.dispose()


def _services(uow_factory, clock):
    store = IdempotencyStore(uow_factory, clock=clock)
    queue = JobQueue(uow_factory, clock=clock)
    engine = OrderEngine(
        uow_factory,
        idempotency=store,
        subscribers=[EffectDispatcher(queue)],
        clock=clock,
    )
    return engine, store, queue


@pytest.mark.asyncio
async def test_order_lifecycle_round_trips_through_sqlite(tmp_path, clock, pricing):
    async with sqlite_uow_factory(tmp_path) as uow_factory:
        engine, _, queue = _services(uow_factory, clock)
        order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 2)], pricing)
        order = await engine.record_payment_intent(order.id, "pi_1", order.version)
        order = await engine.mark_paid(order.id, "pi_1", order.total, order.version)

        loaded = await engine.get_order(order.id)
        assert loaded.status == OrderStatus.PAID
        assert loaded.version == 3
        assert loaded.total == order.total
        assert [i.product_ref for i in loaded.items] == ["sku-1"]

        events = await engine.list_order_events(order.id)
        assert [e.event_type for e in events] == ["OrderCreated", "OrderPaymentPending", "OrderPaid"]
        stream = await engine.list_events(after_seq=events[0].seq)
        assert [e.seq for e in stream] == [e.seq for e in events[1:]]

        jobs, total = await queue.list_jobs(JobStatus.QUEUED)
        assert total == 3
        assert {j.job_type for j in jobs} == {
            JobType.INVOICE_GENERATE,
            JobType.NOTIFY_PAYMENT_CONFIRMED,
            JobType.INVENTORY_ADJUST,
        }


@pytest.mark.asyncio
async def test_stale_version_write_is_rejected(tmp_path, clock, pricing):
    async with sqlite_uow_factory(tmp_path) as uow_factory:
        engine, _, _ = _services(uow_factory, clock)
        order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 1)], pricing)
        await engine.cancel_order(order.id, "changed mind", order.version)

        with pytest.raises(ConcurrentModificationError):
            await engine.record_payment_intent(order.id, "pi_1", order.version)
        assert (await engine.get_order(order.id)).status == OrderStatus.CANCELLED


@pytest.mark.asyncio
async def test_stale_snapshot_loses_compare_and_set(tmp_path, clock, pricing):
    async with sqlite_uow_factory(tmp_path) as uow_factory:
        engine, _, _ = _services(uow_factory, clock)
        order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 1)], pricing)
        stale = await engine.get_order(order.id)
        await engine.cancel_order(order.id, None, order.version)

        stale.cancel("again", clock())
        async with uow_factory() as uow:
            with pytest.raises(ConcurrentModificationError):
                await uow.order_repository.save(stale, order.version)


@pytest.mark.asyncio
async def test_idempotency_key_is_taken_once(tmp_path, clock):
    async with sqlite_uow_factory(tmp_path) as uow_factory:
        store = IdempotencyStore(uow_factory, clock=clock)
        first = await store.begin_or_fetch("charge:1", owner="a")
        second = await store.begin_or_fetch("charge:1", owner="b")
        assert first.is_new
        assert not second.is_new and second.in_progress

        await store.complete("charge:1", {"charge_id": "ch_1"})
        again = await store.begin_or_fetch("charge:1")
        assert again.stored_result == {"charge_id": "ch_1"}


@pytest.mark.asyncio
async def test_job_dedupe_and_single_claim(tmp_path, clock):
    async with sqlite_uow_factory(tmp_path) as uow_factory:
        queue = JobQueue(uow_factory, clock=clock)
        job_id = await queue.enqueue("invoice.generate", {"order_id": "o-1", "version": 3}, dedupe_key="inv:o-1:v3")
        assert await queue.enqueue("invoice.generate", {"order_id": "o-1", "version": 3}, dedupe_key="inv:o-1:v3") == job_id

        assert await queue.due_job_ids() == [job_id]
        claimed = await queue.claim(job_id, "worker-a")
        assert claimed is not None and claimed.locked_by == "worker-a"
        assert await queue.claim(job_id, "worker-b") is None

        done = await queue.complete(job_id, worker_id="worker-a")
        assert done.status == JobStatus.SUCCEEDED
        _, attempts = await queue.get_job(job_id)
        assert [a.worker_id for a in attempts] == ["worker-a"]
