#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
TTL memo of discovered prices.

Keyed by (base canonical, quote canonical, requested amount). An entry read
after its expiry is a miss; expired entries are dropped on the next write.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import threading
import time

from ..shared.models import AssetInfo, TokenPairPrice

CACHE_TTL_SECONDS = 30.0

CacheKey = Tuple[str, str, str]


def cache_key(base: AssetInfo, quote: AssetInfo, amount: str) -> CacheKey:
    return (base.canonical, quote.canonical, amount)


@dataclass(frozen=True)
class CacheEntry:
    price: TokenPairPrice
    expires_at: float


class PriceCache:
    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, CacheEntry] = {}

    def get(self, key: CacheKey) -> Optional[TokenPairPrice]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or self._clock() >= entry.expires_at:
            return None
        return entry.price

    def set(self, key: CacheKey, price: TokenPairPrice) -> None:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in expired:
                del self._entries[k]
            self._entries[key] = CacheEntry(price=price, expires_at=now + self.ttl)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
