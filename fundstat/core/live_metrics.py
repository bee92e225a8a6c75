#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Live metrics stored with each snapshot (MTL bid price, MTL/MTLRECT
circulation, monthly dividends) so historical snapshots can be compared
without re-querying the ledger. Each failed lookup is logged and left empty.
"""
from __future__ import annotations

from typing import Optional, Sequence
import logging

from .price_service import PriceDiscoveryService
from ..indicators.layer1 import compute_circulation
from ..shared.cancellation import RunContext, background
from ..shared.errors import LedgerRequestError, NoPriceError
from ..shared.horizon_client import HorizonClient
from ..shared.models import EURMTL, FundLiveMetrics, FundStructureData, ISSUER_ADDRESS, MTL, MTLRECT

log = logging.getLogger(__name__)


class LiveMetricsEnricher:
    def __init__(self, ledger: HorizonClient, price_service: PriceDiscoveryService, fund_addresses: Sequence[str]) -> None:
        self.ledger = ledger
        self.price_service = price_service
        self.fund_addresses = list(fund_addresses)

    def enrich(self, data: FundStructureData, ctx: Optional[RunContext] = None) -> FundLiveMetrics:
        ctx = ctx or background()
        metrics = FundLiveMetrics()

        try:
            metrics.mtl_market_price = self.price_service.get_bid_price(MTL, EURMTL, ctx)
        except (NoPriceError, LedgerRequestError) as e:
            log.warning(f"metrics: failed to fetch MTL bid price: {e}")

        try:
            metrics.mtl_circulation = compute_circulation(self.ledger, MTL, ctx)
        except LedgerRequestError as e:
            log.warning(f"metrics: failed to compute MTL circulation: {e}")

        try:
            metrics.mtlrect_circulation = compute_circulation(self.ledger, MTLRECT, ctx)
        except LedgerRequestError as e:
            log.warning(f"metrics: failed to compute MTLRECT circulation: {e}")

        try:
            metrics.monthly_dividends = self.ledger.fetch_monthly_eurmtl_outflow(ISSUER_ADDRESS, self.fund_addresses, ctx=ctx)
        except LedgerRequestError as e:
            log.warning(f"metrics: failed to fetch monthly dividends: {e}")

        data.live_metrics = metrics
        return metrics
