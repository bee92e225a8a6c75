#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Conversion of manual valuations into EURMTL.

EURMTL amounts pass through. External symbols are priced from the quote store
(EURMTL is pegged 1:1 to EUR) and multiplied by the optional quantity. The
quantity's unit suffix (g, oz) is informational; AU quotes are per gram.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Protocol
import logging
import threading

from ..shared.cancellation import RunContext
from ..shared.coingecko_client import CoinGeckoClient
from ..shared.errors import QuoteUnavailableError
from ..shared.models import AssetValuation, ExternalValue, ReferenceValue, ResolvedAssetValuation, utcnow

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalQuote:
    symbol: str
    price_in_eur: Decimal
    updated_at: datetime


class ExternalQuoteStore(Protocol):
    def get_quote(self, symbol: str) -> ExternalQuote:
        """Raises QuoteUnavailableError when the symbol has no quote."""
        ...


class InMemoryQuoteStore:
    """Thread-safe quote cache refreshed from CoinGecko."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._quotes: Dict[str, ExternalQuote] = {}

    def save_quote(self, symbol: str, price_in_eur: Decimal, updated_at: Optional[datetime] = None) -> None:
        with self._lock:
            self._quotes[symbol] = ExternalQuote(symbol=symbol, price_in_eur=price_in_eur, updated_at=updated_at or utcnow())

    def get_quote(self, symbol: str) -> ExternalQuote:
        with self._lock:
            quote = self._quotes.get(symbol)
        if quote is None:
            raise QuoteUnavailableError(symbol)
        return quote

    def refresh(self, client: CoinGeckoClient, ctx: Optional[RunContext] = None) -> int:
        """Load fresh EUR prices; returns the number of symbols updated."""
        prices = client.fetch_prices(ctx)
        now = utcnow()
        for symbol, price in prices.items():
            self.save_quote(symbol, price, now)
        log.info(f"Refreshed {len(prices)} external quotes")
        return len(prices)


class ValuationResolver:
    def __init__(self, quote_store: ExternalQuoteStore) -> None:
        self.quote_store = quote_store

    def resolve_valuation(self, valuation: AssetValuation) -> ResolvedAssetValuation:
        """
        Raises:
            QuoteUnavailableError: external symbol without a cached quote
        """
        raw = valuation.raw_value
        if isinstance(raw, ReferenceValue):
            return ResolvedAssetValuation(valuation=valuation, value_in_eurmtl=raw.value)
        if isinstance(raw, ExternalValue):
            quote = self.quote_store.get_quote(raw.symbol)
            quantity = raw.quantity if raw.quantity is not None else Decimal(1)
            return ResolvedAssetValuation(valuation=valuation, value_in_eurmtl=quote.price_in_eur * quantity)
        raise TypeError(f"unknown valuation value type: {type(raw).__name__}")
