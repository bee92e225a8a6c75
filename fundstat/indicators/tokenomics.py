#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tokenomics indicators: holder counts (I24, I27, I40) and per-holder averages
(I21, I22).

I18, I23, I25 and I26 need dividend-recipient and payment history that the
ledger queries here do not provide; they are emitted as zero.
"""
from __future__ import annotations

from decimal import Decimal
from typing import FrozenSet, List, Mapping, Optional
import logging

from .indicator import Calculator, Indicator, make_indicator
from ..core.sources import HolderSource
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import ZERO, safe_div
from ..shared.errors import LedgerRequestError
from ..shared.models import AssetInfo, EURMTL, FundStructureData, MTL, MTLAP, MTLRECT

log = logging.getLogger(__name__)

ONE_SHARE = Decimal(1)


class TokenomicsCalculator(Calculator):
    name = "tokenomics"

    def __init__(self, holders: Optional[HolderSource] = None) -> None:
        self.holders = holders

    def ids(self) -> FrozenSet[int]:
        return frozenset({18, 21, 22, 23, 24, 25, 26, 27, 40})

    def dependencies(self) -> FrozenSet[int]:
        return frozenset({1, 5})

    def _holder_count(self, asset: AssetInfo, ctx: RunContext) -> Decimal:
        if self.holders is None:
            return ZERO
        try:
            return Decimal(self.holders.fetch_asset_holder_count(asset, ctx=ctx))
        except LedgerRequestError as e:
            log.warning(f"Failed to fetch holder count for {asset.code}: {e}")
            return ZERO

    def shareholder_count(self, ctx: RunContext) -> Decimal:
        """Distinct accounts holding at least one MTL or one MTLRECT."""
        if self.holders is None:
            return ZERO
        holder_sets = []
        for asset in (MTL, MTLRECT):
            try:
                holder_sets.append(set(self.holders.fetch_asset_holder_ids(asset, min_balance=ONE_SHARE, ctx=ctx)))
            except LedgerRequestError as e:
                log.warning(f"Failed to fetch {asset.code} holder ids: {e}")
        if len(holder_sets) != 2:
            return ZERO
        return Decimal(len(holder_sets[0] | holder_sets[1]))

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history=None, ctx: Optional[RunContext] = None) -> List[Indicator]:
        ctx = ctx or background()
        i1 = deps[1].value
        i5 = deps[5].value

        i24 = self._holder_count(EURMTL, ctx)
        i27 = self.shareholder_count(ctx)
        i40 = self._holder_count(MTLAP, ctx)
        i21 = safe_div(i5, i27)
        i22 = safe_div(i1, i27)

        return [
            make_indicator(18, ZERO),
            make_indicator(21, i21),
            make_indicator(22, i22),
            make_indicator(23, ZERO),
            make_indicator(24, i24),
            make_indicator(25, ZERO),
            make_indicator(26, ZERO),
            make_indicator(27, i27),
            make_indicator(40, i40),
        ]
