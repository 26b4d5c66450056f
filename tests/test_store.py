import pytest

from kartqueue.enterprise.core import QueueContention
from kartqueue.persistence import ABORT, InMemoryDocumentStore, run_transaction
from kartqueue.persistence.store import child_key


@pytest.mark.asyncio
async def test_absent_key_reads_as_version_zero():
    store = InMemoryDocumentStore()

    snapshot = await store.get("cases/missing")

    assert snapshot.version == 0
    assert snapshot.value is None
    assert not snapshot.exists


@pytest.mark.asyncio
async def test_compare_and_set_rejects_stale_versions():
    store = InMemoryDocumentStore()

    assert await store.compare_and_set("k", 0, {"n": 1})
    assert not await store.compare_and_set("k", 0, {"n": 2})
    assert await store.compare_and_set("k", 1, {"n": 2})

    snapshot = await store.get("k")
    assert snapshot.value == {"n": 2}
    assert snapshot.version == 2


@pytest.mark.asyncio
async def test_delete_leaves_a_tombstone_version():
    store = InMemoryDocumentStore()
    await store.set("k", {"n": 1})
    await store.delete("k")

    snapshot = await store.get("k")
    assert snapshot.value is None
    assert snapshot.version == 2
    assert not await store.compare_and_set("k", 0, {"n": 3})


@pytest.mark.asyncio
async def test_children_lists_direct_live_children_only():
    store = InMemoryDocumentStore()
    await store.set("userCarts/alice/case-b", True)
    await store.set("userCarts/alice/case-a", True)
    await store.set("userCarts/alice/case-c", True)
    await store.delete("userCarts/alice/case-c")
    await store.set("userCarts/alice2/case-z", True)
    await store.set("userCarts/alice/nested/deeper", True)

    children = await store.children("userCarts/alice")

    assert list(children) == ["case-a", "case-b"]


def test_child_key():
    assert child_key("a/b", "a/b/c") == "c"
    assert child_key("a/b", "a/b/c/d") is None
    assert child_key("a/b", "a/bc") is None


@pytest.mark.asyncio
async def test_transaction_mutates_private_copy_and_commits():
    store = InMemoryDocumentStore()
    await store.set("counter", {"value": 1})

    def increment(current):
        current["value"] += 1
        return current

    result = await run_transaction(store, "counter", increment)

    assert result.committed
    assert result.attempts == 1
    assert result.snapshot.value == {"value": 2}
    assert (await store.value("counter")) == {"value": 2}


@pytest.mark.asyncio
async def test_transaction_abort_leaves_key_untouched():
    store = InMemoryDocumentStore()
    await store.set("flag", {"on": False})

    result = await run_transaction(store, "flag", lambda current: ABORT)

    assert not result.committed
    assert result.snapshot.version == 1
    assert (await store.get("flag")).version == 1


class _AlwaysStaleStore(InMemoryDocumentStore):
    async def compare_and_set(self, key, expected_version, value):
        return False


@pytest.mark.asyncio
async def test_transaction_raises_contention_after_retry_budget():
    store = _AlwaysStaleStore()
    calls = []

    def mutate(current):
        calls.append(current)
        return {"n": 1}

    with pytest.raises(QueueContention) as excinfo:
        await run_transaction(store, "hot", mutate, max_attempts=3)

    assert excinfo.value.attempts == 3
    assert len(calls) == 3
