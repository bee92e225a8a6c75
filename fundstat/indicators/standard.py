#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Registry with the standard calculator set wired to live collaborators.
"""
from __future__ import annotations

from typing import Optional, Sequence

from .analytics import AnalyticsCalculator
from .dividend import DividendCalculator
from .indicator import DEFAULT_CATALOG, IndicatorCatalog
from .layer0 import Layer0Calculator
from .layer1 import BidPriceSource, Layer1Calculator
from .layer2 import Layer2Calculator
from .registry import IndicatorRegistry
from .tokenomics import TokenomicsCalculator
from ..shared.horizon_client import HorizonClient


def standard_registry(prices: Optional[BidPriceSource], ledger: Optional[HorizonClient],
                      fund_addresses: Sequence[str] = (),
                      catalog: IndicatorCatalog = DEFAULT_CATALOG) -> IndicatorRegistry:
    registry = IndicatorRegistry(catalog)
    registry.register(Layer0Calculator())
    registry.register(Layer1Calculator(prices=prices, circulation=ledger))
    registry.register(Layer2Calculator())
    registry.register(DividendCalculator(dividends=ledger, fund_addresses=fund_addresses))
    registry.register(AnalyticsCalculator())
    registry.register(TokenomicsCalculator(holders=ledger))
    return registry
