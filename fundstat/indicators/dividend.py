#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Dividend indicators: I11, I15, I16, I17, I33, I34, I54, I55.

The monthly payout (I11) prefers the value stored with the snapshot and falls
back to a live lookup of the issuer's EURMTL outflow. Year-ago price (I55) and
the trailing 12-month payouts come from snapshot history.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, FrozenSet, List, Mapping, Optional, Sequence
import logging

from .history import HistoricalIndicatorAccessor, lookup_snapshot, months_before
from .indicator import Calculator, Indicator, make_indicator
from .layer0 import find_token_price
from .stats import median
from ..core.sources import DividendSource
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import ZERO, safe_div
from ..shared.errors import LedgerRequestError
from ..shared.models import FundStructureData, ISSUER_ADDRESS, utcnow

log = logging.getLogger(__name__)

MONTHS_PER_YEAR = Decimal(12)
HUNDRED = Decimal(100)


def snapshot_mtl_price(data: FundStructureData) -> Decimal:
    """MTL price recorded in a snapshot: live market price first, then the stored token price."""
    live = data.live_metrics
    if live is not None and live.mtl_market_price is not None and live.mtl_market_price != 0:
        return live.mtl_market_price
    return find_token_price(data.all_accounts(), ("MTL",), ISSUER_ADDRESS)


def price_year_ago(history: Optional[HistoricalIndicatorAccessor], now: datetime) -> Decimal:
    snap = lookup_snapshot(history, now - timedelta(days=365))
    if snap is None:
        return ZERO
    return snapshot_mtl_price(snap)


def monthly_dividends_12m(history: Optional[HistoricalIndicatorAccessor], now: datetime) -> List[Decimal]:
    """Stored monthly payouts from the snapshots nearest to each of the past 12 months."""
    divs: List[Decimal] = []
    if history is None:
        return divs
    for i in range(1, 13):
        snap = lookup_snapshot(history, months_before(now, i))
        if snap is None or snap.live_metrics is None or snap.live_metrics.monthly_dividends is None:
            continue
        divs.append(snap.live_metrics.monthly_dividends)
    return divs


class DividendCalculator(Calculator):
    name = "dividend"

    def __init__(self, dividends: Optional[DividendSource] = None, fund_addresses: Sequence[str] = (),
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.dividends = dividends
        self.fund_addresses = list(fund_addresses)
        self.clock = clock

    def ids(self) -> FrozenSet[int]:
        return frozenset({11, 15, 16, 17, 33, 34, 54, 55})

    def dependencies(self) -> FrozenSet[int]:
        return frozenset({5, 10})

    def _monthly_dividends(self, data: FundStructureData, ctx: RunContext) -> Decimal:
        if data.live_metrics is not None and data.live_metrics.monthly_dividends is not None:
            return data.live_metrics.monthly_dividends
        if self.dividends is None:
            return ZERO
        try:
            return self.dividends.fetch_monthly_eurmtl_outflow(ISSUER_ADDRESS, self.fund_addresses, ctx=ctx)
        except LedgerRequestError as e:
            log.warning(f"Failed to fetch monthly EURMTL outflow: {e}")
            return ZERO

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history: Optional[HistoricalIndicatorAccessor] = None,
                  ctx: Optional[RunContext] = None) -> List[Indicator]:
        ctx = ctx or background()
        now = self.clock()
        i5 = deps[5].value
        i10 = deps[10].value

        i11 = self._monthly_dividends(data, ctx)
        i15 = safe_div(i11, i5)
        i55 = price_year_ago(history, now)
        i54 = i15 * MONTHS_PER_YEAR
        divs12m = monthly_dividends_12m(history, now)

        # EPS from the median trailing monthly payout
        i33 = ZERO
        if i5 != 0 and divs12m:
            i33 = median(divs12m) * MONTHS_PER_YEAR / i5

        i16 = ZERO
        if i5 != 0 and i10 != 0 and i55 != 0 and divs12m:
            annual = median(divs12m) * MONTHS_PER_YEAR
            factor = 1 - (i10 - i55) / i55
            i16 = safe_div(annual, i5 * i10 * factor) * HUNDRED

        i17 = safe_div(i54, i55) * HUNDRED
        i34 = safe_div(i10, i54)

        return [
            make_indicator(11, i11),
            make_indicator(15, i15),
            make_indicator(16, i16),
            make_indicator(17, i17),
            make_indicator(33, i33),
            make_indicator(34, i34),
            make_indicator(54, i54),
            make_indicator(55, i55),
        ]
