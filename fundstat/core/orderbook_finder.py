#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Price discovery from the direct order book and the AMM liquidity pool.

Order book: best bid/ask at depth 1.
AMM: spot price R_other / R_source of the first pool holding both assets.
Between the two, the lower ask wins; when only one has a price it is used.
The reported price is the chosen side's bid, falling back to its ask.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
import logging

from .sources import LedgerQuoteSource
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import to_decimal, ZERO
from ..shared.errors import LedgerRequestError, NoPriceError
from ..shared.models import (
    AssetInfo,
    LiquidityPool,
    OrderbookData,
    OrderbookProvenance,
    PriceQuote,
    TokenPairPrice,
    utcnow,
)

log = logging.getLogger(__name__)


def amm_spot_price(pool: LiquidityPool, source: AssetInfo) -> Optional[Decimal]:
    """Spot price of `source` in the pool's other asset, None if undefined."""
    if len(pool.reserves) != 2:
        return None
    r_source: Optional[Decimal] = None
    r_other: Optional[Decimal] = None
    for reserve in pool.reserves:
        amount = to_decimal(reserve.amount)
        if amount is None or amount == 0:
            return None
        if reserve.asset == source.canonical:
            r_source = amount
        else:
            r_other = amount
    if r_source is None or r_other is None:
        return None
    return r_other / r_source


def select_best_source(orderbook: PriceQuote, amm: PriceQuote) -> str:
    """Lower ask wins; a missing order-book ask compares as zero."""
    ob_has = orderbook.has_price
    amm_has = amm.ask is not None
    if ob_has and amm_has:
        ob_ask = orderbook.ask if orderbook.ask is not None else ZERO
        return "orderbook" if ob_ask <= amm.ask else "amm"
    if ob_has:
        return "orderbook"
    if amm_has:
        return "amm"
    return "none"


class OrderbookAmmFinder:
    def __init__(self, ledger: LedgerQuoteSource, clock: Callable[[], datetime] = utcnow) -> None:
        self.ledger = ledger
        self._clock = clock

    def fetch_orderbook_data(self, source: AssetInfo, dest: AssetInfo, ctx: Optional[RunContext] = None) -> OrderbookData:
        """
        Query both venues. A venue that fails is logged and left empty; the
        transport error is raised only when both venues failed.
        """
        ctx = ctx or background()
        errors = []

        ob_quote = PriceQuote()
        try:
            ob = self.ledger.fetch_orderbook(source, dest, 1, ctx=ctx)
            ob_quote = PriceQuote(
                ask=to_decimal(ob.asks[0].price) if ob.asks else None,
                bid=to_decimal(ob.bids[0].price) if ob.bids else None,
            )
        except LedgerRequestError as e:
            log.warning(f"orderbook fetch failed source={source.code} dest={dest.code} error={e}")
            errors.append(e)

        amm_quote = PriceQuote()
        pool_id: Optional[str] = None
        ctx.check()
        try:
            pools = self.ledger.fetch_liquidity_pools(source, dest, ctx=ctx)
            if pools:
                spot = amm_spot_price(pools[0], source)
                if spot is not None:
                    amm_quote = PriceQuote(ask=spot, bid=spot)
                    pool_id = pools[0].id
        except LedgerRequestError as e:
            log.warning(f"liquidity pool fetch failed source={source.code} dest={dest.code} error={e}")
            errors.append(e)

        if len(errors) == 2:
            raise errors[0]

        return OrderbookData(
            orderbook=ob_quote,
            amm=amm_quote,
            amm_pool_id=pool_id,
            best_source=select_best_source(ob_quote, amm_quote),
        )

    def find(self, source: AssetInfo, dest: AssetInfo, ctx: Optional[RunContext] = None) -> TokenPairPrice:
        data = self.fetch_orderbook_data(source, dest, ctx)
        chosen = {"orderbook": data.orderbook, "amm": data.amm}.get(data.best_source)
        if chosen is None:
            raise NoPriceError(f"no orderbook or AMM price for {source.code}/{dest.code}")
        if chosen.bid is not None:
            price, price_type = chosen.bid, "bid"
        elif chosen.ask is not None:
            price, price_type = chosen.ask, "ask"
        else:
            raise NoPriceError(f"no orderbook or AMM price for {source.code}/{dest.code}")
        return TokenPairPrice(
            base=source,
            quote=dest,
            price=price,
            source_amount_used="1",
            destination_amount=price,
            discovered_at=self._clock(),
            provenance=OrderbookProvenance(price_type=price_type, data=data),
        )

    def best_bid(self, source: AssetInfo, dest: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal:
        """Best standing bid from the order book only."""
        ctx = ctx or background()
        ctx.check()
        ob = self.ledger.fetch_orderbook(source, dest, 1, ctx=ctx)
        for entry in ob.bids:
            bid = to_decimal(entry.price)
            if bid is not None:
                return bid
            log.warning(f"unparseable bid price {entry.price!r} for {source.code}/{dest.code}")
        raise NoPriceError(f"no bids in orderbook {source.code}/{dest.code}")
