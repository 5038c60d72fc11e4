"""Tests for the fallback stores."""

import pytest

from market_feed.api.schemas import GlobalStats, Ticker
from market_feed.services.cache import (
    InMemoryFallbackStore,
    RedisFallbackStore,
    create_fallback_store,
)


class TestInMemoryFallbackStore:
    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, store):
        assert await store.get("fallback:market") is None

    @pytest.mark.asyncio
    async def test_models_are_stored_as_json_structures(self, store):
        await store.put("fallback:slice:global_stats", GlobalStats(btcDominance=52.3))
        await store.put("fallback:slice:tickers", [Ticker(symbol="BTC", price=1.0)])

        stats = await store.get("fallback:slice:global_stats")
        tickers = await store.get("fallback:slice:tickers")

        assert stats["btcDominance"] == 52.3
        assert tickers[0]["symbol"] == "BTC"
        assert GlobalStats(**stats) == GlobalStats(btcDominance=52.3)

    @pytest.mark.asyncio
    async def test_newer_put_replaces_value(self, store):
        await store.put("k", [1])
        await store.put("k", [2])

        assert await store.get("k") == [2]

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store):
        await store.put("k", {"items": [1]})

        first = await store.get("k")
        first["items"].append(2)

        assert await store.get("k") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_clear_and_health(self, store):
        await store.put("k", 1)
        store.clear()

        assert await store.get("k") is None
        assert await store.health_check() is True


class TestRedisFallbackStore:
    @pytest.mark.asyncio
    async def test_unconnected_store_misses_and_drops_writes(self):
        redis_store = RedisFallbackStore(url="redis://localhost:6379/0")

        await redis_store.put("k", {"a": 1})

        assert await redis_store.get("k") is None
        assert await redis_store.health_check() is False


def test_create_fallback_store_backends():
    assert isinstance(create_fallback_store("memory"), InMemoryFallbackStore)
    assert isinstance(create_fallback_store("redis"), RedisFallbackStore)
    assert create_fallback_store("memory").name == "memory"
