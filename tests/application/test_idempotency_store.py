import pytest

from application.services.idempotency import IdempotencyStore


@pytest.fixture
def store(uow_factory, clock):
    return IdempotencyStore(uow_factory, lease_seconds=60, retention_hours=1, clock=clock)


@pytest.mark.asyncio
async def test_first_caller_wins_and_replays_get_the_snapshot(store):
    first = await store.begin_or_fetch("k1")
    assert first.is_new

    second = await store.begin_or_fetch("k1")
    assert not second.is_new
    assert second.in_progress

    await store.complete("k1", {"answer": 42})
    third = await store.begin_or_fetch("k1")
    assert not third.is_new
    assert third.stored_result == {"answer": 42}


@pytest.mark.asyncio
async def test_expired_lease_can_be_taken_over(store, clock):
    assert (await store.begin_or_fetch("k2", owner="crashed")).is_new
    clock.advance(61)
    taken = await store.begin_or_fetch("k2", owner="worker")
    assert taken.is_new


@pytest.mark.asyncio
async def test_completed_key_is_never_taken_over_while_retained(store, clock):
    await store.begin_or_fetch("k3")
    await store.complete("k3", {"done": True})
    clock.advance(120)
    again = await store.begin_or_fetch("k3")
    assert again.stored_result == {"done": True}


@pytest.mark.asyncio
async def test_release_reopens_the_key(store):
    await store.begin_or_fetch("k4")
    await store.release("k4")
    assert (await store.begin_or_fetch("k4")).is_new


@pytest.mark.asyncio
async def test_release_keeps_completed_results(store):
    await store.begin_or_fetch("k5")
    await store.complete("k5", {"v": 1})
    await store.release("k5")
    assert (await store.begin_or_fetch("k5")).stored_result == {"v": 1}


@pytest.mark.asyncio
async def test_retention_expiry_and_purge(store, state, clock):
    await store.begin_or_fetch("k6")
    await store.complete("k6", {"v": 1})
    clock.advance(3601)
    assert await store.purge_expired() == 1
    assert "k6" not in state.idempotency
    assert (await store.begin_or_fetch("k6")).is_new


@pytest.mark.asyncio
async def test_complete_without_reservation_still_stores_result(store, state):
    await store.complete("k7", {"v": 7})
    assert state.idempotency["k7"].result == {"v": 7}
