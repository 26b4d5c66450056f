import asyncio

import pytest

from kartqueue.enterprise.config.settings import QueueSettings
from kartqueue.enterprise.core import CaseQueue, QueueContention, QueueEntry
from kartqueue.observability.metrics import metrics_registry
from kartqueue.persistence import InMemoryDocumentStore
from kartqueue.services.keys import case_queue_key
from kartqueue.services.queue import ReservationQueueManager


def _manager(store, max_attempts=25):
    return ReservationQueueManager(store, QueueSettings(max_attempts=max_attempts, backoff_seconds=0))


@pytest.mark.asyncio
async def test_enqueue_appends_in_arrival_order():
    store = InMemoryDocumentStore()
    manager = _manager(store)

    first = await manager.enqueue("case-1", "alice", "C1")
    second = await manager.enqueue("case-1", "bob", "A3")

    assert (first.position, second.position) == (1, 2)
    entries = await manager.entries("case-1")
    assert [entry.user_id for entry in entries] == ["alice", "bob"]
    document = await store.value(case_queue_key("case-1"))
    assert document["queueCount"] == 2
    assert set(document["queue"]) == {"1", "2"}


@pytest.mark.asyncio
async def test_queues_are_independent_per_case():
    manager = _manager(InMemoryDocumentStore())

    await manager.enqueue("case-1", "alice", "C1")
    admission = await manager.enqueue("case-2", "bob", "A3")

    assert admission.position == 1


@pytest.mark.asyncio
async def test_concurrent_enqueues_each_get_a_distinct_position():
    store = InMemoryDocumentStore()
    manager = _manager(store, max_attempts=100)
    users = [f"user-{index}" for index in range(20)]

    admissions = await asyncio.gather(*(manager.enqueue("case-1", user, "B1") for user in users))

    queue = await manager.snapshot("case-1")
    assert queue.queue_count == len(users)
    assert queue.is_contiguous()
    assert sorted(admission.position for admission in admissions) == list(range(1, len(users) + 1))
    assert sorted(entry.user_id for entry in queue.entries()) == sorted(users)
    for admission in admissions:
        assert queue.queue[admission.position].order_id == admission.order_id


@pytest.mark.asyncio
async def test_pop_and_shift_moves_everyone_up():
    manager = _manager(InMemoryDocumentStore())
    for user in ("alice", "bob", "carol"):
        await manager.enqueue("case-1", user, "B1")

    popped = await manager.pop_and_shift("case-1")

    assert popped.user_id == "alice"
    queue = await manager.snapshot("case-1")
    assert queue.queue_count == 2
    assert queue.is_contiguous()
    assert [entry.user_id for entry in queue.entries()] == ["bob", "carol"]


@pytest.mark.asyncio
async def test_pop_on_empty_or_absent_queue_writes_nothing():
    store = InMemoryDocumentStore()
    manager = _manager(store)

    assert await manager.pop_and_shift("never-queued") is None
    assert (await store.get(case_queue_key("never-queued"))).version == 0

    await manager.enqueue("case-1", "alice", "C1")
    await manager.pop_and_shift("case-1")
    version = (await store.get(case_queue_key("case-1"))).version

    assert await manager.pop_and_shift("case-1") is None
    assert (await store.get(case_queue_key("case-1"))).version == version


@pytest.mark.asyncio
async def test_pop_with_expected_head_skips_a_different_head():
    manager = _manager(InMemoryDocumentStore())
    first = await manager.enqueue("case-1", "alice", "C1")
    await manager.enqueue("case-1", "bob", "A3")

    assert await manager.pop_and_shift("case-1", expected_order_id="someone-else") is None
    popped = await manager.pop_and_shift("case-1", expected_order_id=first.order_id)

    assert popped.order_id == first.order_id


@pytest.mark.asyncio
async def test_enqueue_racing_pop_loses_nobody():
    manager = _manager(InMemoryDocumentStore(), max_attempts=100)
    for user in ("alice", "bob"):
        await manager.enqueue("case-1", user, "B1")

    results = await asyncio.gather(
        manager.pop_and_shift("case-1"),
        manager.enqueue("case-1", "carol", "B1"),
        manager.enqueue("case-1", "dave", "B1"),
    )

    assert results[0].user_id == "alice"
    queue = await manager.snapshot("case-1")
    assert queue.is_contiguous()
    assert queue.queue_count == 3
    assert {entry.user_id for entry in queue.entries()} == {"bob", "carol", "dave"}


class _ContendedStore(InMemoryDocumentStore):
    async def compare_and_set(self, key, expected_version, value):
        return False


@pytest.mark.asyncio
async def test_exhausted_retries_raise_contention_and_count_it():
    manager = _manager(_ContendedStore(), max_attempts=2)
    before = metrics_registry.get_sample_value("kartqueue_queue_contention_total") or 0.0

    with pytest.raises(QueueContention):
        await manager.enqueue("case-1", "alice", "C1")

    assert metrics_registry.get_sample_value("kartqueue_queue_contention_total") == before + 1


def test_case_queue_document_uses_string_positions():
    queue = CaseQueue()
    queue.append(QueueEntry(user_id="alice", pickup_location="A1"))

    document = queue.to_document()
    restored = CaseQueue.from_document(document)

    assert list(document["queue"]) == ["1"]
    assert restored.head.user_id == "alice"
