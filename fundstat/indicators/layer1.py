#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Layer 1: assets value (I3), operating balance (I4), share circulation
(I5-I7) and market prices of MTL (I10) and MTLRECT (I49).
"""
from __future__ import annotations

from decimal import Decimal
from typing import FrozenSet, List, Mapping, Optional, Protocol
import logging

from .indicator import Calculator, Indicator, make_indicator
from ..core.sources import CirculationSource
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import ZERO
from ..shared.errors import LedgerRequestError, NoPriceError
from ..shared.models import AccountType, AssetInfo, EURMTL, FundStructureData, ISSUER_ADDRESS, MTL, MTLRECT

log = logging.getLogger(__name__)

ASSET_ACCOUNT_IDS = (51, 52, 53, 58, 59, 60)


class BidPriceSource(Protocol):
    def get_bid_price(self, asset: AssetInfo, base_asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal: ...


def compute_circulation(source: CirculationSource, asset: AssetInfo, ctx: RunContext) -> Decimal:
    """
    Circulating supply: total issued minus the issuer's own holding minus
    AMM pool reserves, clamped at zero.

    Raises:
        LedgerRequestError: any of the three lookups failed
    """
    total = source.fetch_asset_amount(asset, ctx=ctx)
    issuer_balance = source.fetch_account_balance(ISSUER_ADDRESS, asset, ctx=ctx)
    pool_reserves = source.fetch_all_pool_reserves_for_asset(asset, ctx=ctx)
    circulation = total - issuer_balance - pool_reserves
    if circulation < 0:
        return ZERO
    return circulation


def fetch_circulation(source: Optional[CirculationSource], asset: AssetInfo,
                      ctx: Optional[RunContext] = None) -> Decimal:
    """compute_circulation() that yields zero when a lookup fails."""
    if source is None:
        return ZERO
    try:
        return compute_circulation(source, asset, ctx or background())
    except LedgerRequestError as e:
        log.warning(f"Failed to compute circulation for {asset.code}: {e}")
        return ZERO


def operating_balance(data: FundStructureData) -> Decimal:
    """EURMTL balances plus XLM converted to EURMTL across sub-fund accounts."""
    total = ZERO
    for acc in data.accounts:
        if acc.type is not AccountType.SUBFOND:
            continue
        for token in acc.tokens:
            if token.asset.code == "EURMTL":
                total += token.balance
        total += acc.xlm_balance * (acc.xlm_price_eurmtl or ZERO)
    return total


class Layer1Calculator(Calculator):
    name = "layer1"

    def __init__(self, prices: Optional[BidPriceSource] = None, circulation: Optional[CirculationSource] = None) -> None:
        self.prices = prices
        self.circulation = circulation

    def ids(self) -> FrozenSet[int]:
        return frozenset({3, 4, 5, 6, 7, 10, 49})

    def dependencies(self) -> FrozenSet[int]:
        return frozenset(ASSET_ACCOUNT_IDS)

    def _bid(self, asset: AssetInfo, ctx: RunContext) -> Decimal:
        if self.prices is None:
            return ZERO
        try:
            return self.prices.get_bid_price(asset, EURMTL, ctx)
        except (NoPriceError, LedgerRequestError) as e:
            log.warning(f"Failed to fetch bid price for {asset.code}: {e}")
            return ZERO

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history=None, ctx: Optional[RunContext] = None) -> List[Indicator]:
        ctx = ctx or background()
        i3 = sum((deps[i].value for i in ASSET_ACCOUNT_IDS), ZERO)
        i4 = operating_balance(data)
        i6 = fetch_circulation(self.circulation, MTL, ctx)
        i7 = fetch_circulation(self.circulation, MTLRECT, ctx)
        i5 = i6 + i7
        i10 = self._bid(MTL, ctx)
        i49 = self._bid(MTLRECT, ctx)

        return [
            make_indicator(3, i3),
            make_indicator(4, i4),
            make_indicator(5, i5),
            make_indicator(6, i6),
            make_indicator(7, i7),
            make_indicator(10, i10),
            make_indicator(49, i49),
        ]
