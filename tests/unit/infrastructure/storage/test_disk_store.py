import pytest

from storesync.infrastructure.storage.disk_store import DiskKeyValueStore, MemoryKeyValueStore


@pytest.fixture(params=["memory", "disk"])
async def kv_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryKeyValueStore()
    else:
        store = DiskKeyValueStore(tmp_path / "kv")
        yield store
        await store.close()


async def test_put_get_delete(kv_store):
    await kv_store.put("a", {"x": [1, 2]})
    assert await kv_store.get("a") == {"x": [1, 2]}
    await kv_store.delete("a")
    assert await kv_store.get("a") is None
    assert await kv_store.get("a", default=7) == 7


async def test_delete_missing_key_is_noop(kv_store):
    await kv_store.delete("never-there")


async def test_list_all_filters_by_prefix(kv_store):
    await kv_store.put("q:op:1", 1)
    await kv_store.put("q:op:2", 2)
    await kv_store.put("q:next-id", 3)
    assert await kv_store.list_all("q:op:") == {"q:op:1": 1, "q:op:2": 2}
    assert len(await kv_store.list_all()) == 3


async def test_stored_values_are_copies(kv_store):
    value = {"items": [1]}
    await kv_store.put("k", value)
    value["items"].append(2)
    fetched = await kv_store.get("k")
    fetched["items"].append(3)
    assert await kv_store.get("k") == {"items": [1]}


async def test_disk_store_persists_across_instances(tmp_path):
    first = DiskKeyValueStore(tmp_path / "kv")
    await first.put("k", "v")
    await first.close()

    second = DiskKeyValueStore(tmp_path / "kv")
    assert await second.get("k") == "v"
    await second.close()
