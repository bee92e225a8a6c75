#!/usr/bin/env python3
"""
In-memory stand-ins for the ledger and quote collaborators used across tests.

Every mapping value may be an exception instance, which is raised on lookup.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fundstat.core.valuation_resolver import ExternalQuote
from fundstat.shared.errors import QuoteUnavailableError
from fundstat.shared.models import (
    BalanceLine,
    LedgerAccount,
    LiquidityPool,
    OrderbookEntry,
    OrderbookSnapshot,
    PathRecord,
    PoolReserve,
    utcnow,
)

ADDR_A = "G" + "A" * 55
ADDR_B = "G" + "B" * 55
ADDR_C = "G" + "C" * 55


def _lookup(mapping: Dict, key, default=None):
    value = mapping.get(key, default)
    if isinstance(value, BaseException):
        raise value
    return value


def book(bid: Optional[str] = None, ask: Optional[str] = None) -> OrderbookSnapshot:
    return OrderbookSnapshot(
        bids=(OrderbookEntry(price=bid, amount="100"),) if bid is not None else (),
        asks=(OrderbookEntry(price=ask, amount="100"),) if ask is not None else (),
    )


def path(source_amount: str, destination_amount: str, hops: Tuple[str, ...] = ()) -> PathRecord:
    return PathRecord(source_amount=source_amount, destination_amount=destination_amount,
                      source_asset_code="", path=hops)


def pool(pool_id: str, asset_a: str, amount_a: str, asset_b: str, amount_b: str) -> LiquidityPool:
    return LiquidityPool(id=pool_id, reserves=(PoolReserve(asset_a, amount_a), PoolReserve(asset_b, amount_b)))


def account(account_id: str, balances: Tuple[BalanceLine, ...] = (), data: Optional[Dict[str, str]] = None) -> LedgerAccount:
    return LedgerAccount(account_id=account_id, balances=balances, data=data or {})


class FakeLedger:
    """Implements every ledger protocol from plain dictionaries keyed by asset code."""

    def __init__(self) -> None:
        self.orderbooks: Dict[Tuple[str, str], Any] = {}
        self.send_paths: Dict[Tuple[str, str], Any] = {}
        self.receive_paths: Dict[Tuple[str, str], Any] = {}
        self.pools: Dict[Tuple[str, str], Any] = {}
        self.accounts: Dict[str, Any] = {}
        self.asset_amounts: Dict[str, Any] = {}
        self.balances: Dict[Tuple[str, str], Any] = {}
        self.pool_reserves: Dict[str, Any] = {}
        self.holder_ids: Dict[str, Any] = {}
        self.holder_counts: Dict[str, Any] = {}
        self.outflow: Any = Decimal(0)
        self.calls: List[Tuple] = []

    def fetch_orderbook(self, selling, buying, limit=1, ctx=None):
        self.calls.append(("orderbook", selling.code, buying.code))
        return _lookup(self.orderbooks, (selling.code, buying.code), OrderbookSnapshot())

    def fetch_strict_send_paths(self, source, amount, dest, ctx=None):
        self.calls.append(("send", source.code, dest.code, amount))
        return _lookup(self.send_paths, (source.code, dest.code), [])

    def fetch_strict_receive_paths(self, source, dest, amount, ctx=None):
        self.calls.append(("receive", source.code, dest.code, amount))
        return _lookup(self.receive_paths, (source.code, dest.code), [])

    def fetch_liquidity_pools(self, reserve_a, reserve_b, ctx=None):
        self.calls.append(("pools", reserve_a.code, reserve_b.code))
        return _lookup(self.pools, (reserve_a.code, reserve_b.code), [])

    def fetch_account(self, account_id, ctx=None):
        self.calls.append(("account", account_id))
        return _lookup(self.accounts, account_id, account(account_id))

    def fetch_asset_amount(self, asset, ctx=None):
        return _lookup(self.asset_amounts, asset.code, Decimal(0))

    def fetch_account_balance(self, account_id, asset, ctx=None):
        return _lookup(self.balances, (account_id, asset.code), Decimal(0))

    def fetch_all_pool_reserves_for_asset(self, asset, ctx=None):
        return _lookup(self.pool_reserves, asset.code, Decimal(0))

    def fetch_asset_holder_ids(self, asset, min_balance=Decimal("0.0000001"), ctx=None):
        self.calls.append(("holder_ids", asset.code, min_balance))
        return _lookup(self.holder_ids, asset.code, [])

    def fetch_asset_holder_count(self, asset, min_balance=Decimal("0.0000001"), ctx=None):
        return _lookup(self.holder_counts, asset.code, 0)

    def fetch_monthly_eurmtl_outflow(self, account_id, fund_addresses, ctx=None, now=None):
        self.calls.append(("outflow", account_id, tuple(fund_addresses)))
        if isinstance(self.outflow, BaseException):
            raise self.outflow
        return self.outflow


class FakeBidSource:
    def __init__(self, bids: Dict[str, Any]) -> None:
        self.bids = bids

    def get_bid_price(self, asset, base_asset, ctx=None):
        return _lookup(self.bids, asset.code, Decimal(0))


class FakeQuoteStore:
    def __init__(self, quotes: Dict[str, Decimal]) -> None:
        self.quotes = quotes

    def get_quote(self, symbol):
        if symbol not in self.quotes:
            raise QuoteUnavailableError(symbol)
        return ExternalQuote(symbol=symbol, price_in_eur=self.quotes[symbol], updated_at=utcnow())


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self, **kwargs):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class ScriptedSession:
    """Stands in for requests.Session; returns (or raises) queued items in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.headers = {}
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        pass


class RoutedSession:
    """Stands in for requests.Session; answers by the first route whose fragment occurs in the URL."""

    def __init__(self, routes: List[Tuple[str, Any]]):
        self.routes = routes
        self.headers = {}
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        for fragment, item in self.routes:
            if fragment in url:
                if isinstance(item, BaseException):
                    raise item
                return item
        return FakeResponse(404, text="no route")

    def close(self):
        pass


class HookedLedger(FakeLedger):
    """FakeLedger that runs `hooks[name]()` before the named call, to block or count it."""

    def __init__(self) -> None:
        super().__init__()
        self.hooks: Dict[str, Any] = {}

    def _run_hook(self, name: str) -> None:
        hook = self.hooks.get(name)
        if hook is not None:
            hook()

    def fetch_orderbook(self, selling, buying, limit=1, ctx=None):
        self._run_hook("orderbook")
        return super().fetch_orderbook(selling, buying, limit, ctx)

    def fetch_strict_send_paths(self, source, amount, dest, ctx=None):
        self._run_hook("send")
        return super().fetch_strict_send_paths(source, amount, dest, ctx)

    def fetch_account(self, account_id, ctx=None):
        self._run_hook("account")
        return super().fetch_account(account_id, ctx)
