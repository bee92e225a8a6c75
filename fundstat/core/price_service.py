#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Price discovery service.

- get_price: cached; spot queries (amount "1") race the path finder against the
  orderbook/AMM finder and keep the higher price, value queries use paths only.
- get_bid_price: best standing bid from the order book, uncached.
- get_token_prices: spot price and value against EURMTL and XLM, deriving a
  missing side through the EURMTL/XLM cross-rate.
"""
from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from decimal import Decimal
from typing import Any, Optional, Tuple
import logging

from .orderbook_finder import OrderbookAmmFinder
from .path_finder import PathPriceFinder
from .price_cache import PriceCache, cache_key
from .sources import LedgerQuoteSource
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import quantize_ledger, safe_parse
from ..shared.errors import Cancelled, LedgerRequestError, NoPriceError
from ..shared.models import (
    AssetInfo,
    BestProvenance,
    EURMTL,
    OrderbookProvenance,
    PathProvenance,
    TokenPairPrice,
    TokenPrices,
    XLM,
    utcnow,
)

log = logging.getLogger(__name__)

SPOT_AMOUNT = "1"
POLL_INTERVAL_S = 0.05

# Errors that make one source abstain instead of failing the query
ABSTAIN_ERRORS = (NoPriceError, LedgerRequestError)


class PriceDiscoveryService:
    def __init__(self, ledger: LedgerQuoteSource, cache: Optional[PriceCache] = None, workers: int = 2,
                 depth_valuation: bool = False,
                 path_finder: Optional[PathPriceFinder] = None,
                 orderbook_finder: Optional[OrderbookAmmFinder] = None) -> None:
        self.cache = cache or PriceCache()
        self.path_finder = path_finder or PathPriceFinder(ledger)
        self.orderbook_finder = orderbook_finder or OrderbookAmmFinder(ledger)
        self.depth_valuation = depth_valuation
        self._executor = ThreadPoolExecutor(max_workers=max(2, workers), thread_name_prefix="price")

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "PriceDiscoveryService":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------

    def get_price(self, asset: AssetInfo, base_asset: AssetInfo, amount: str, ctx: Optional[RunContext] = None) -> TokenPairPrice:
        """
        Price of `asset` in `base_asset`.

        Raises:
            NoPriceError / LedgerRequestError: every source abstained
            Cancelled: ctx cancelled
        """
        ctx = ctx or background()
        key = cache_key(asset, base_asset, amount)
        cached = self.cache.get(key)
        if cached is not None:
            log.debug(f"price cache hit {asset.code}/{base_asset.code} amount={amount}")
            return cached

        if amount == SPOT_AMOUNT:
            result = self._spot_price(asset, base_asset, ctx)
        else:
            result = self.path_finder.find(asset, base_asset, amount, ctx)

        self.cache.set(key, result)
        return result

    def _await_both(self, path_future: Future, ob_future: Future, ctx: RunContext) -> None:
        pending = {path_future, ob_future}
        while pending:
            if ctx.cancelled:
                for f in pending:
                    f.cancel()
                ctx.check()
            _, pending = wait(pending, timeout=POLL_INTERVAL_S, return_when=FIRST_COMPLETED)

    @staticmethod
    def _outcome(future: Future, label: str, asset: AssetInfo, base_asset: AssetInfo) -> Tuple[Optional[TokenPairPrice], Optional[Exception]]:
        try:
            return future.result(), None
        except Cancelled:
            raise
        except ABSTAIN_ERRORS as e:
            log.warning(f"{label} price source abstained {asset.code}/{base_asset.code}: {e}")
            return None, e

    def _spot_price(self, asset: AssetInfo, base_asset: AssetInfo, ctx: RunContext) -> TokenPairPrice:
        path_future = self._executor.submit(self.path_finder.find, asset, base_asset, SPOT_AMOUNT, ctx)
        ob_future = self._executor.submit(self.orderbook_finder.find, asset, base_asset, ctx)
        self._await_both(path_future, ob_future, ctx)

        path_price, path_err = self._outcome(path_future, "path", asset, base_asset)
        ob_price, ob_err = self._outcome(ob_future, "orderbook", asset, base_asset)

        if path_price is None and ob_price is None:
            raise path_err or ob_err or NoPriceError(f"no price for {asset.code}/{base_asset.code}")
        if ob_price is None:
            return path_price
        if path_price is None:
            return ob_price

        path_prov = path_price.provenance if isinstance(path_price.provenance, PathProvenance) else None
        ob_prov = ob_price.provenance if isinstance(ob_price.provenance, OrderbookProvenance) else None
        winner, chosen = (path_price, "path") if path_price.price >= ob_price.price else (ob_price, "orderbook")
        return TokenPairPrice(
            base=winner.base,
            quote=winner.quote,
            price=winner.price,
            source_amount_used=SPOT_AMOUNT,
            destination_amount=winner.destination_amount,
            discovered_at=utcnow(),
            provenance=BestProvenance(
                path_price=path_price.price,
                orderbook_price=ob_price.price,
                chosen_source=chosen,
                path=path_prov,
                orderbook=ob_prov,
            ),
        )

    def get_bid_price(self, asset: AssetInfo, base_asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal:
        """Raises NoPriceError if the order book has no bids."""
        return self.orderbook_finder.best_bid(asset, base_asset, ctx)

    def get_token_prices(self, asset: AssetInfo, balance: Any, ctx: Optional[RunContext] = None) -> TokenPrices:
        """
        Spot prices and values of a holding in EURMTL and XLM.

        Raises:
            NoPriceError: both reference prices failed (the cause chains the EURMTL error)
        """
        ctx = ctx or background()
        result = TokenPrices()

        eur_err: Optional[Exception] = None
        xlm_err: Optional[Exception] = None
        try:
            eur = self.get_price(asset, EURMTL, SPOT_AMOUNT, ctx)
            result.price_eurmtl, result.provenance_eurmtl = eur.price, eur.provenance
        except ABSTAIN_ERRORS as e:
            eur_err = e
        try:
            xlm = self.get_price(asset, XLM, SPOT_AMOUNT, ctx)
            result.price_xlm, result.provenance_xlm = xlm.price, xlm.provenance
        except ABSTAIN_ERRORS as e:
            xlm_err = e

        if eur_err is not None and xlm_err is not None:
            raise NoPriceError(
                f"both EURMTL and XLM price lookups failed for {asset.code}: eurmtl: {eur_err}, xlm: {xlm_err}"
            ) from eur_err

        if (eur_err is None) != (xlm_err is None):
            self._derive_cross_rate(asset, result, ctx)

        bal = safe_parse(balance)
        if result.price_eurmtl is not None:
            result.value_eurmtl = quantize_ledger(result.price_eurmtl * bal)
        if result.price_xlm is not None:
            result.value_xlm = quantize_ledger(result.price_xlm * bal)

        if self.depth_valuation and bal != 0 and bal != 1:
            self._apply_depth_values(asset, balance, result, ctx)

        return result

    def _derive_cross_rate(self, asset: AssetInfo, result: TokenPrices, ctx: RunContext) -> None:
        try:
            cross = self.get_price(EURMTL, XLM, SPOT_AMOUNT, ctx)
        except ABSTAIN_ERRORS as e:
            log.warning(f"cross-rate EURMTL/XLM unavailable, {asset.code} stays single-currency: {e}")
            return
        rate = cross.price
        if rate == 0:
            log.warning("cross-rate EURMTL/XLM is zero, skipping derivation")
            return
        if result.price_eurmtl is not None:
            result.price_xlm = result.price_eurmtl * rate
        else:
            result.price_eurmtl = result.price_xlm / rate

    def _apply_depth_values(self, asset: AssetInfo, balance: Any, result: TokenPrices, ctx: RunContext) -> None:
        """Replace value = price x balance with what selling the whole balance would return."""
        amount = str(balance)
        if result.price_eurmtl is not None:
            try:
                result.value_eurmtl = self.get_price(asset, EURMTL, amount, ctx).destination_amount
            except ABSTAIN_ERRORS as e:
                log.debug(f"depth valuation in EURMTL unavailable for {asset.code}: {e}")
        if result.price_xlm is not None:
            try:
                result.value_xlm = self.get_price(asset, XLM, amount, ctx).destination_amount
            except ABSTAIN_ERRORS as e:
                log.debug(f"depth valuation in XLM unavailable for {asset.code}: {e}")
