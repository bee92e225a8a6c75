#!/usr/bin/env python3
"""
Unit tests for the price TTL cache
"""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fundstat.core.price_cache import CACHE_TTL_SECONDS, PriceCache, cache_key
from fundstat.shared.models import EURMTL, MTL, PathProvenance, TokenPairPrice, XLM, utcnow


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _price(value: str) -> TokenPairPrice:
    d = Decimal(value)
    return TokenPairPrice(base=MTL, quote=EURMTL, price=d, source_amount_used="1", destination_amount=d,
                          discovered_at=utcnow(), provenance=PathProvenance(Decimal(1), d))


class TestPriceCache:
    """TTL semantics of PriceCache"""

    def test_miss_on_empty_cache(self):
        cache = PriceCache()
        assert cache.get(cache_key(MTL, EURMTL, "1")) is None

    def test_hit_before_expiry(self):
        clock = FakeClock()
        cache = PriceCache(clock=clock)
        key = cache_key(MTL, EURMTL, "1")
        cache.set(key, _price("0.5"))
        clock.now += CACHE_TTL_SECONDS - 1
        assert cache.get(key).price == Decimal("0.5")

    def test_miss_after_expiry(self):
        clock = FakeClock()
        cache = PriceCache(ttl=30, clock=clock)
        key = cache_key(MTL, EURMTL, "1")
        cache.set(key, _price("0.5"))
        clock.now += 30
        assert cache.get(key) is None

    def test_amount_is_part_of_key(self):
        cache = PriceCache()
        cache.set(cache_key(MTL, EURMTL, "1"), _price("0.5"))
        assert cache.get(cache_key(MTL, EURMTL, "100")) is None
        assert cache.get(cache_key(MTL, XLM, "1")) is None

    def test_expired_entries_purged_on_write(self):
        clock = FakeClock()
        cache = PriceCache(ttl=10, clock=clock)
        cache.set(cache_key(MTL, EURMTL, "1"), _price("0.5"))
        cache.set(cache_key(MTL, XLM, "1"), _price("4"))
        assert len(cache) == 2
        clock.now += 11
        cache.set(cache_key(EURMTL, XLM, "1"), _price("8"))
        assert len(cache) == 1

    def test_overwrite_refreshes_expiry(self):
        clock = FakeClock()
        cache = PriceCache(ttl=10, clock=clock)
        key = cache_key(MTL, EURMTL, "1")
        cache.set(key, _price("0.5"))
        clock.now += 8
        cache.set(key, _price("0.6"))
        clock.now += 8
        assert cache.get(key).price == Decimal("0.6")


if __name__ == "__main__":
    pytest.main([__file__])
