import json
import time

import pytest

from pkce_flow.errors import StoreError
from pkce_flow.models import TokenRecord
from pkce_flow.token_store import FileTokenStore, MemoryTokenStore


@pytest.mark.asyncio
async def test_memory_store_save_load() -> None:
    store = MemoryTokenStore()
    record = TokenRecord("access", "refresh", int(time.time()) + 3600)

    await store.save(record)

    assert await store.load() == record


@pytest.mark.asyncio
async def test_memory_store_load_missing() -> None:
    assert await MemoryTokenStore().load() is None


@pytest.mark.asyncio
async def test_memory_store_clear() -> None:
    store = MemoryTokenStore()
    await store.save(TokenRecord("access", None, int(time.time()) + 3600))

    await store.clear()

    assert await store.load() is None


@pytest.mark.asyncio
async def test_save_tokens_computes_expiry() -> None:
    store = MemoryTokenStore()
    now = time.time()

    await store.save_tokens("A", None, 3600, now=now)
    record = await store.load(now=now)

    assert record is not None
    assert record.access_token == "A"
    assert record.expires_at == int(now) + 3600


@pytest.mark.asyncio
async def test_load_inside_buffer_clears_store() -> None:
    store = MemoryTokenStore()
    now = time.time()
    await store.save(TokenRecord("access", "refresh", int(now) + 100))

    assert await store.load(now=now) is None
    assert await store._read() is None


@pytest.mark.asyncio
async def test_load_just_outside_buffer() -> None:
    store = MemoryTokenStore()
    now = 1_700_000_000
    await store.save(TokenRecord("access", "refresh", now + 301))

    assert await store.load(now=now) is not None


@pytest.mark.asyncio
async def test_load_at_buffer_edge_is_expired() -> None:
    store = MemoryTokenStore()
    now = 1_700_000_000
    await store.save(TokenRecord("access", "refresh", now + 300))

    assert await store.load(now=now) is None


@pytest.mark.asyncio
async def test_file_store_save_load(tmp_path) -> None:
    store = FileTokenStore(tmp_path / "auth.json")
    record = TokenRecord("access", "refresh", int(time.time()) + 3600)

    await store.save(record)

    assert await store.load() == record


@pytest.mark.asyncio
async def test_file_store_persists(tmp_path) -> None:
    path = tmp_path / "auth.json"
    record = TokenRecord("access", None, int(time.time()) + 3600)
    await FileTokenStore(path).save(record)

    assert await FileTokenStore(path).load() == record


@pytest.mark.asyncio
async def test_file_store_json_shape(tmp_path) -> None:
    path = tmp_path / "auth.json"
    await FileTokenStore(path).save(TokenRecord("access", "refresh", 2_000_000_000))

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "tokens": {
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_at": 2_000_000_000,
        }
    }


@pytest.mark.asyncio
async def test_file_store_expired_record_is_removed(tmp_path) -> None:
    path = tmp_path / "auth.json"
    now = time.time()
    await FileTokenStore(path).save(TokenRecord("access", "refresh", int(now) + 100))

    assert await FileTokenStore(path).load(now=now) is None
    assert json.loads(path.read_text(encoding="utf-8")) == {}


@pytest.mark.asyncio
async def test_file_store_missing_file(tmp_path) -> None:
    store = FileTokenStore(tmp_path / "missing.json")

    assert await store.load() is None
    await store.clear()
    assert not (tmp_path / "missing.json").exists()


@pytest.mark.asyncio
async def test_file_store_invalid_json(tmp_path) -> None:
    path = tmp_path / "auth.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreError):
        await FileTokenStore(path).load()


@pytest.mark.asyncio
async def test_file_store_invalid_record(tmp_path) -> None:
    path = tmp_path / "auth.json"
    path.write_text(json.dumps({"tokens": {"access_token": "a"}}), encoding="utf-8")

    with pytest.raises(StoreError, match="deserialize"):
        await FileTokenStore(path).load()


@pytest.mark.asyncio
async def test_file_store_unreadable_path(tmp_path) -> None:
    store = FileTokenStore(tmp_path)

    with pytest.raises(StoreError, match="Failed to read token store"):
        await store.load()
    with pytest.raises(StoreError):
        await store.save(TokenRecord("a", None, int(time.time()) + 3600))
