"""
Tests for the counter key-value stores.
"""

import asyncio
import json
from pathlib import Path

import pytest

from sitegate.core.rate_limit import QuotaStore, RateLimiter
from sitegate.core.store import InMemoryStore, JsonFileStore


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_get_set_delete(self) -> None:
        store = InMemoryStore()
        assert await store.get("a") is None

        await store.set("a", "1")
        assert await store.get("a") == "1"

        await store.delete("a")
        await store.delete("a")
        assert await store.get("a") is None


class TestJsonFileStore:

    @pytest.mark.asyncio
    async def test_values_survive_new_instance(self, tmp_path: Path) -> None:
        """Test counters persist across store instances (process restarts)."""
        path = tmp_path / "limits" / "counters.json"
        await JsonFileStore(path).set("a", "1")

        assert await JsonFileStore(path).get("a") == "1"

    @pytest.mark.asyncio
    async def test_delete_missing_key(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path / "counters.json")
        await store.delete("missing")
        assert not (tmp_path / "counters.json").exists()

    @pytest.mark.asyncio
    async def test_non_object_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "counters.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ValueError):
            await JsonFileStore(path).get("a")

    @pytest.mark.asyncio
    async def test_concurrent_writes_keep_every_key(self, tmp_path: Path) -> None:
        path = tmp_path / "counters.json"
        store = JsonFileStore(path)

        await asyncio.gather(*(store.set(f"k{i}", str(i)) for i in range(10)))

        assert json.loads(path.read_text()) == {f"k{i}": str(i) for i in range(10)}
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_limiter_runs_unchanged_on_file_store(self, tmp_path: Path, fake_clock) -> None:
        limiter = RateLimiter(QuotaStore(JsonFileStore(tmp_path / "counters.json")), clock=fake_clock)

        assert await limiter.admit("k", 2, 60)
        assert await limiter.admit("k", 2, 60)
        assert not await limiter.admit("k", 2, 60)

        restarted = RateLimiter(QuotaStore(JsonFileStore(tmp_path / "counters.json")), clock=fake_clock)
        assert not await restarted.admit("k", 2, 60)
