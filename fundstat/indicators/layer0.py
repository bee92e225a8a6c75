#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Layer 0: per-account totals (I51-I53, I56-I60) and the BTC rate (I61).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional
import logging

from .indicator import Calculator, Indicator, make_indicator
from ..shared.cancellation import RunContext
from ..shared.decimal_utils import ZERO
from ..shared.models import FundAccountPortfolio, FundStructureData

log = logging.getLogger(__name__)

ACCOUNT_INDICATORS: Dict[str, int] = {
    "DEFI": 51,
    "MCITY": 52,
    "MABIZ": 53,
    "APART": 56,
    "MFB": 57,
    "MAIN ISSUER": 58,
    "BOSS": 59,
    "ADMIN": 60,
}

BTC_CODES = ("BTC", "WBTC")


def find_token_price(accounts: Iterable[FundAccountPortfolio], codes: Iterable[str],
                     issuer: Optional[str] = None) -> Decimal:
    """First non-zero EURMTL price of a token with one of `codes`, zero if none."""
    codes = tuple(codes)
    for acc in accounts:
        for token in acc.tokens:
            if token.asset.code not in codes:
                continue
            if issuer is not None and token.asset.issuer != issuer:
                continue
            if token.price_eurmtl is not None and token.price_eurmtl != 0:
                return token.price_eurmtl
    return ZERO


class Layer0Calculator(Calculator):
    name = "layer0"

    def ids(self) -> FrozenSet[int]:
        return frozenset(ACCOUNT_INDICATORS.values()) | {61}

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history=None, ctx: Optional[RunContext] = None) -> List[Indicator]:
        all_accounts = data.all_accounts()
        totals: Dict[int, Decimal] = {}
        for acc in all_accounts:
            indicator_id = ACCOUNT_INDICATORS.get(acc.name)
            if indicator_id is not None and indicator_id not in totals:
                totals[indicator_id] = acc.total_eurmtl

        indicators: List[Indicator] = []
        for name, indicator_id in ACCOUNT_INDICATORS.items():
            if indicator_id not in totals:
                log.warning(f"Account {name} not found in fund data, emitting zero for I{indicator_id}")
            indicators.append(make_indicator(indicator_id, totals.get(indicator_id, ZERO), f"{name} Value", "EURMTL"))

        indicators.append(make_indicator(61, find_token_price(all_accounts, BTC_CODES), "BTC Rate", "EURMTL"))
        return indicators
