#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Collaborator contracts consumed by the core.

HorizonClient satisfies every ledger protocol below; tests substitute small
in-memory fakes. All calls are read-only.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence

from ..shared.cancellation import RunContext
from ..shared.models import AssetInfo, LedgerAccount, LiquidityPool, OrderbookSnapshot, PathRecord


class LedgerQuoteSource(Protocol):
    def fetch_orderbook(self, selling: AssetInfo, buying: AssetInfo, limit: int = 1, ctx: Optional[RunContext] = None) -> OrderbookSnapshot: ...

    def fetch_strict_send_paths(self, source: AssetInfo, amount: str, dest: AssetInfo, ctx: Optional[RunContext] = None) -> List[PathRecord]: ...

    def fetch_strict_receive_paths(self, source: AssetInfo, dest: AssetInfo, amount: str, ctx: Optional[RunContext] = None) -> List[PathRecord]: ...

    def fetch_liquidity_pools(self, reserve_a: AssetInfo, reserve_b: AssetInfo, ctx: Optional[RunContext] = None) -> List[LiquidityPool]: ...


class LedgerAccountSource(Protocol):
    def fetch_account(self, account_id: str, ctx: Optional[RunContext] = None) -> LedgerAccount: ...


class CirculationSource(Protocol):
    def fetch_asset_amount(self, asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal: ...

    def fetch_account_balance(self, account_id: str, asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal: ...

    def fetch_all_pool_reserves_for_asset(self, asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal: ...


class HolderSource(Protocol):
    def fetch_asset_holder_ids(self, asset: AssetInfo, min_balance: Decimal = ..., ctx: Optional[RunContext] = None) -> List[str]: ...

    def fetch_asset_holder_count(self, asset: AssetInfo, min_balance: Decimal = ..., ctx: Optional[RunContext] = None) -> int: ...


class DividendSource(Protocol):
    def fetch_monthly_eurmtl_outflow(self, account_id: str, fund_addresses: Sequence[str], ctx: Optional[RunContext] = None,
                                     now: Optional[datetime] = None) -> Decimal: ...
