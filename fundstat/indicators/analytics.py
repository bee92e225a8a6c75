#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Analytics indicators: ROI (I43), risk measures (I44-I47) and D/BV (I48).

Risk measures are monthly, computed from MTL prices in the snapshots nearest
to each of the past 12 months plus the current price. Beta is measured
against BTC. The risk-free rate is taken as zero. Fewer than three monthly
returns yields zero for I44-I47.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, FrozenSet, List, Mapping, Optional, Tuple

from .dividend import HUNDRED, snapshot_mtl_price
from .history import HistoricalIndicatorAccessor, lookup_snapshot, months_before
from .indicator import Calculator, Indicator, make_indicator
from .layer0 import BTC_CODES, find_token_price
from .stats import covariance, downside_std_dev, mean, normal_quantile, simple_returns, std_dev, variance
from ..shared.cancellation import RunContext
from ..shared.decimal_utils import ZERO, safe_div
from ..shared.models import FundStructureData, utcnow

MIN_RETURNS = 3
VAR_CONFIDENCE = 0.95


def monthly_price_series(history: Optional[HistoricalIndicatorAccessor], now: datetime,
                         current_mtl: Decimal, current_btc: Decimal) -> List[Tuple[Decimal, Decimal]]:
    """(MTL, BTC) price pairs, oldest first, ending with the current prices."""
    series: List[Tuple[Decimal, Decimal]] = []
    for i in range(12, 0, -1):
        snap = lookup_snapshot(history, months_before(now, i))
        if snap is None:
            continue
        mtl = snapshot_mtl_price(snap)
        if mtl == 0:
            continue
        series.append((mtl, find_token_price(snap.all_accounts(), BTC_CODES)))
    if current_mtl != 0:
        series.append((current_mtl, current_btc))
    return series


def _returns(series: List[Tuple[Decimal, Decimal]]) -> Tuple[List[Decimal], List[Decimal], List[Decimal]]:
    """Fund returns, plus the fund/BTC return pairs where both legs are defined. MTL prices are non-zero."""
    fund = simple_returns([mtl for mtl, _ in series])
    paired_fund: List[Decimal] = []
    paired_btc: List[Decimal] = []
    for r, (_, b0), (_, b1) in zip(fund, series, series[1:]):
        if b0 != 0 and b1 != 0:
            paired_fund.append(r)
            paired_btc.append((b1 - b0) / b0)
    return fund, paired_fund, paired_btc


def risk_measures(series: List[Tuple[Decimal, Decimal]]) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """Beta, Sharpe, Sortino and 95% VaR (as a percentage loss)."""
    fund, paired_fund, paired_btc = _returns(series)
    if len(fund) < MIN_RETURNS:
        return ZERO, ZERO, ZERO, ZERO

    mu = mean(fund)
    sigma = std_dev(fund)

    beta = ZERO
    if len(paired_btc) >= MIN_RETURNS:
        beta = safe_div(covariance(paired_fund, paired_btc), variance(paired_btc))

    sharpe = safe_div(mu, sigma)
    sortino = safe_div(mu, downside_std_dev(fund, ZERO))

    z = Decimal(repr(normal_quantile(1 - VAR_CONFIDENCE)))
    var95 = -(mu + z * sigma) * HUNDRED
    return beta, sharpe, sortino, var95


class AnalyticsCalculator(Calculator):
    name = "analytics"

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock

    def ids(self) -> FrozenSet[int]:
        return frozenset({43, 44, 45, 46, 47, 48})

    def dependencies(self) -> FrozenSet[int]:
        return frozenset({3, 5, 10, 54, 55, 61})

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history: Optional[HistoricalIndicatorAccessor] = None,
                  ctx: Optional[RunContext] = None) -> List[Indicator]:
        i3 = deps[3].value
        i5 = deps[5].value
        i10 = deps[10].value
        i54 = deps[54].value
        i55 = deps[55].value
        i61 = deps[61].value

        i43 = ZERO
        if i55 != 0:
            i43 = ((i10 - i55) + i54) / i55 * HUNDRED

        i48 = ZERO
        if i5 != 0 and i3 != 0:
            i48 = safe_div(i54, i3 / i5)

        i44 = i45 = i46 = i47 = ZERO
        if history is not None:
            series = monthly_price_series(history, self.clock(), i10, i61)
            i44, i45, i46, i47 = risk_measures(series)

        return [
            make_indicator(43, i43),
            make_indicator(44, i44),
            make_indicator(45, i45),
            make_indicator(46, i46),
            make_indicator(47, i47),
            make_indicator(48, i48),
        ]
