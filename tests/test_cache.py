"""Tests for the venue cache and the periodic sweeper."""

from __future__ import annotations

import asyncio

import pytest

from momentsense.core.cache import VenueCache, normalize_key, venue_cache_key
from momentsense.core.models import VenueEnrichment
from momentsense.core.sweeper import PeriodicSweeper


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> VenueCache:
    return VenueCache(default_ttl_seconds=300, clock=clock)


class TestNormalizeKey:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("Senso-ji Temple", "senso-ji_temple"),
            ("  Senso-ji   Temple! ", "senso-ji_temple"),
            ("Café de Flore", "caf_de_flore"),
            ("Eiffel Tower Paris", "eiffel_tower_paris"),
        ],
    )
    def test_normalization(self, query: str, expected: str) -> None:
        assert normalize_key(query) == expected


class TestVenueCacheKey:
    """Tests for keys of queries that normalization would empty or merge."""

    @pytest.mark.parametrize("query", ["Senso-ji Temple", "  Senso-ji   Temple! ", "Eiffel Tower Paris"])
    def test_ascii_matches_normalize_key(self, query: str) -> None:
        assert venue_cache_key(query) == normalize_key(query)

    def test_non_ascii_names_are_distinct(self) -> None:
        keys = {venue_cache_key(name) for name in ["浅草寺", "東京タワー", "明治神宮", "Café de Flore", "Caf de Flore"]}

        assert len(keys) == 5
        assert "" not in keys

    def test_non_ascii_key_is_stable(self) -> None:
        assert venue_cache_key("  浅草寺   Tokyo ") == venue_cache_key("浅草寺 tokyo")
        assert venue_cache_key("Café de Flore").startswith("caf_de_flore_")


class TestVenueCache:
    """Tests for TTL semantics and statistics."""

    def test_put_then_get(self, cache: VenueCache, senso_ji_enrichment: VenueEnrichment) -> None:
        cache.put("senso-ji", senso_ji_enrichment)
        assert cache.get("senso-ji") is senso_ji_enrichment

    def test_miss(self, cache: VenueCache) -> None:
        assert cache.get("nowhere") is None

    def test_entry_expires_after_ttl(
        self, cache: VenueCache, clock: FakeClock, senso_ji_enrichment: VenueEnrichment
    ) -> None:
        cache.put("senso-ji", senso_ji_enrichment)

        clock.now = 300
        assert cache.get("senso-ji") is senso_ji_enrichment

        clock.now = 300.5
        assert cache.get("senso-ji") is None
        assert len(cache) == 0

    def test_per_entry_ttl(
        self, cache: VenueCache, clock: FakeClock, senso_ji_enrichment: VenueEnrichment
    ) -> None:
        cache.put("long", senso_ji_enrichment, ttl_seconds=86400)
        cache.put("short", senso_ji_enrichment)

        clock.now = 3600
        assert cache.get("long") is senso_ji_enrichment
        assert cache.get("short") is None

    def test_last_write_wins(self, cache: VenueCache, senso_ji_enrichment: VenueEnrichment) -> None:
        other = senso_ji_enrichment.model_copy(update={"verified_name": "Asakusa Kannon"})
        cache.put("senso-ji", senso_ji_enrichment)
        cache.put("senso-ji", other)

        assert cache.get("senso-ji").verified_name == "Asakusa Kannon"

    def test_sweep(self, cache: VenueCache, clock: FakeClock, senso_ji_enrichment: VenueEnrichment) -> None:
        cache.put("a", senso_ji_enrichment)
        cache.put("b", senso_ji_enrichment, ttl_seconds=1000)

        clock.now = 500
        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_delete_and_clear(self, cache: VenueCache, senso_ji_enrichment: VenueEnrichment) -> None:
        cache.put("a", senso_ji_enrichment)
        cache.put("b", senso_ji_enrichment)

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.clear() == 1
        assert len(cache) == 0

    def test_stats(self, cache: VenueCache, senso_ji_enrichment: VenueEnrichment) -> None:
        cache.put("senso-ji", senso_ji_enrichment)
        cache.get("senso-ji")
        cache.get("missing")

        stats = cache.get_stats()

        assert stats["size"] == 1
        assert stats["keys"] == ["senso-ji"]
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5


class TestPeriodicSweeper:
    """Tests for the background sweep task."""

    @pytest.mark.asyncio
    async def test_runs_sweep_periodically(self) -> None:
        calls: list[int] = []

        def sweep() -> int:
            calls.append(1)
            return 0

        sweeper = PeriodicSweeper("test", 0.01, sweep)
        sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert len(calls) >= 2
        assert sweeper.running is False

    @pytest.mark.asyncio
    async def test_sweep_errors_do_not_stop_the_loop(self) -> None:
        calls: list[int] = []

        def sweep() -> int:
            calls.append(1)
            raise RuntimeError("boom")

        sweeper = PeriodicSweeper("failing", 0.01, sweep)
        sweeper.start()
        await asyncio.sleep(0.05)

        assert sweeper.running is True
        await sweeper.stop()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        sweeper = PeriodicSweeper("idle", 1, lambda: 0)
        await sweeper.stop()
        assert sweeper.running is False

    def test_run_once(self) -> None:
        sweeper = PeriodicSweeper("once", 1, lambda: 3)
        assert sweeper.run_once() == 3
