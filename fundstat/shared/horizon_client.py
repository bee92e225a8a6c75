#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Horizon (Stellar ledger) API client.

Read-only queries used by price discovery, the valuation scanner and the
indicator calculators. Implements retry with exponential backoff on HTTP 429,
5xx, timeouts and connection errors, and follows `_links.next` pagination.
Every call accepts a RunContext; back-off sleeps wait on it and request
timeouts are clamped to its deadline.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from .cancellation import RunContext, background
from .decimal_utils import to_decimal, STROOP, ZERO
from .errors import LedgerRequestError
from .logging_setup import get_logger
from .models import (
    AssetInfo,
    BalanceLine,
    EURMTL,
    LedgerAccount,
    LiquidityPool,
    OrderbookEntry,
    OrderbookSnapshot,
    PathRecord,
    PoolReserve,
)

logger = get_logger(__name__)

PAGE_LIMIT = 200
DIVIDEND_WINDOW_DAYS = 30
PAYMENT_TYPES = ("payment", "path_payment_strict_send", "path_payment_strict_receive")


def _asset_params(prefix: str, asset: AssetInfo) -> Dict[str, str]:
    if asset.is_native:
        return {f"{prefix}_asset_type": "native"}
    return {
        f"{prefix}_asset_type": asset.kind.value,
        f"{prefix}_asset_code": asset.code,
        f"{prefix}_asset_issuer": asset.issuer,
    }


def _records(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list(((payload or {}).get("_embedded") or {}).get("records") or [])


def _balance_of(balances: Sequence[BalanceLine], asset: AssetInfo) -> Optional[str]:
    for b in balances:
        if b.asset_code == asset.code and b.asset_issuer == asset.issuer:
            return b.balance
    return None


def _parse_balances(raw: Sequence[Dict[str, Any]]) -> tuple:
    return tuple(
        BalanceLine(
            asset_type=str(b.get("asset_type", "")),
            balance=str(b.get("balance", "0")),
            asset_code=str(b.get("asset_code", "") or ""),
            asset_issuer=str(b.get("asset_issuer", "") or ""),
            liquidity_pool_id=str(b.get("liquidity_pool_id", "") or ""),
        )
        for b in raw or []
    )


def _parse_path_record(rec: Dict[str, Any]) -> PathRecord:
    return PathRecord(
        source_amount=str(rec.get("source_amount", "")),
        destination_amount=str(rec.get("destination_amount", "")),
        source_asset_code=str(rec.get("source_asset_code", "") or ""),
        path=tuple(str(p.get("asset_code", "") or "") for p in rec.get("path") or []),
    )


def _parse_pool(rec: Dict[str, Any]) -> LiquidityPool:
    return LiquidityPool(
        id=str(rec.get("id", "")),
        reserves=tuple(
            PoolReserve(asset=str(r.get("asset", "")), amount=str(r.get("amount", "")))
            for r in rec.get("reserves") or []
        ),
    )


def _parse_time(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


class HorizonClient:
    """Client for the Horizon REST API"""

    def __init__(self, base_url: str, timeout: float = 30.0, retry_attempts: int = 3, retry_backoff: float = 1.0,
                 session: Optional[requests.Session] = None):
        """
        Args:
            base_url: Horizon root URL
            timeout: Request timeout in seconds
            retry_attempts: Number of retries after the first attempt
            retry_backoff: Base backoff time between retries (doubled per attempt)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = max(0, int(retry_attempts))
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'fundstat/1.0',
        })

    def close(self) -> None:
        self.session.close()

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, ctx: Optional[RunContext] = None) -> Dict[str, Any]:
        """
        GET a JSON document with retry logic

        Args:
            path: Path relative to base_url, or an absolute pagination href
            params: Query parameters

        Raises:
            LedgerRequestError: non-retryable status or retries exhausted
            Cancelled: ctx was cancelled while waiting
        """
        ctx = ctx or background()
        url = path if path.startswith("http") else f"{self.base_url}/{path.lstrip('/')}"
        last_error: Optional[str] = None
        last_status: Optional[int] = None

        for attempt in range(self.retry_attempts + 1):
            ctx.check()
            try:
                logger.debug(f"Horizon GET {url} params={params} (attempt {attempt + 1}/{self.retry_attempts + 1})")
                response = self.session.get(url, params=params, timeout=ctx.clamp_timeout(self.timeout))
                if response.status_code == 200:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise LedgerRequestError(f"invalid JSON from {url}: {e}", 200)
                last_status = response.status_code
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code != 429 and response.status_code < 500:
                    raise LedgerRequestError(f"{last_error} from {url}", response.status_code)
                logger.warning(f"Horizon request throttled or failed: {last_error}")

            except requests.exceptions.Timeout:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"Attempt {attempt + 1} timed out url={url}")

            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {e}"
                logger.warning(f"Attempt {attempt + 1} connection failed url={url}")

            except requests.exceptions.RequestException as e:
                last_error = f"Request failed: {e}"
                logger.warning(f"Attempt {attempt + 1} failed url={url}: {e}")

            if attempt < self.retry_attempts:
                backoff_time = self.retry_backoff * (2 ** attempt)
                logger.debug(f"Retrying in {backoff_time}s...")
                ctx.wait(backoff_time)

        raise LedgerRequestError(f"request to {url} failed after {self.retry_attempts + 1} attempts: {last_error}", last_status)

    def _paginate(self, path: str, params: Dict[str, Any], ctx: Optional[RunContext] = None) -> Iterator[Dict[str, Any]]:
        """Yield records across all pages following `_links.next.href`."""
        next_path: Optional[str] = path
        next_params: Optional[Dict[str, Any]] = params
        seen = set()
        while next_path:
            payload = self._get(next_path, next_params, ctx)
            records = _records(payload)
            for rec in records:
                yield rec
            href = (((payload or {}).get("_links") or {}).get("next") or {}).get("href") or ""
            if not records or not href or href in seen:
                break
            seen.add(href)
            next_path, next_params = href, None

    # ------------------------------------------------------------------
    # quote source
    # ------------------------------------------------------------------

    def fetch_orderbook(self, selling: AssetInfo, buying: AssetInfo, limit: int = 1, ctx: Optional[RunContext] = None) -> OrderbookSnapshot:
        params = {**_asset_params("selling", selling), **_asset_params("buying", buying), "limit": str(limit)}
        payload = self._get("/order_book", params, ctx)

        def entries(key: str) -> tuple:
            return tuple(
                OrderbookEntry(price=str(e.get("price", "")), amount=str(e.get("amount", "")))
                for e in payload.get(key) or []
            )

        return OrderbookSnapshot(bids=entries("bids"), asks=entries("asks"))

    def fetch_strict_send_paths(self, source: AssetInfo, amount: str, dest: AssetInfo, ctx: Optional[RunContext] = None) -> List[PathRecord]:
        """If I send `amount` of `source`, how much `dest` do I get?"""
        params = {**_asset_params("source", source), "source_amount": amount, "destination_assets": dest.canonical}
        return [_parse_path_record(r) for r in _records(self._get("/paths/strict-send", params, ctx))]

    def fetch_strict_receive_paths(self, source: AssetInfo, dest: AssetInfo, amount: str, ctx: Optional[RunContext] = None) -> List[PathRecord]:
        """To receive `amount` of `dest`, how much `source` do I need?"""
        params = {"source_assets": source.canonical, **_asset_params("destination", dest), "destination_amount": amount}
        return [_parse_path_record(r) for r in _records(self._get("/paths/strict-receive", params, ctx))]

    def fetch_liquidity_pools(self, reserve_a: AssetInfo, reserve_b: AssetInfo, ctx: Optional[RunContext] = None) -> List[LiquidityPool]:
        params = {"reserves": f"{reserve_a.canonical},{reserve_b.canonical}", "limit": "1"}
        return [_parse_pool(r) for r in _records(self._get("/liquidity_pools", params, ctx))]

    def fetch_all_pool_reserves_for_asset(self, asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal:
        """Total amount of `asset` locked across all AMM pools."""
        total = ZERO
        for rec in self._paginate("/liquidity_pools", {"reserves": asset.canonical, "limit": str(PAGE_LIMIT)}, ctx):
            pool = _parse_pool(rec)
            for reserve in pool.reserves:
                if reserve.asset != asset.canonical:
                    continue
                amount = to_decimal(reserve.amount)
                if amount is None:
                    logger.warning(f"Failed to parse pool reserve pool={pool.id} asset={reserve.asset} amount={reserve.amount!r}")
                    continue
                total += amount
        return total

    # ------------------------------------------------------------------
    # account source
    # ------------------------------------------------------------------

    def fetch_account(self, account_id: str, ctx: Optional[RunContext] = None) -> LedgerAccount:
        payload = self._get(f"/accounts/{account_id}", None, ctx)
        data = payload.get("data") or {}
        return LedgerAccount(
            account_id=str(payload.get("id", account_id)),
            balances=_parse_balances(payload.get("balances") or []),
            data={str(k): str(v) for k, v in data.items()},
        )

    def fetch_account_balance(self, account_id: str, asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal:
        """Balance of `asset` on the account; zero when there is no trustline."""
        account = self.fetch_account(account_id, ctx)
        raw = _balance_of(account.balances, asset)
        if raw is None:
            return ZERO
        amount = to_decimal(raw)
        if amount is None:
            raise LedgerRequestError(f"unparseable balance {raw!r} for {asset.code} on {account_id}")
        return amount

    def fetch_asset_amount(self, asset: AssetInfo, ctx: Optional[RunContext] = None) -> Decimal:
        """Total issued amount of a credit asset, across every place it can sit."""
        if asset.is_native:
            raise ValueError("cannot query amount for native asset")
        params = {"asset_code": asset.code, "asset_issuer": asset.issuer, "limit": "1"}
        records = _records(self._get("/assets", params, ctx))
        if not records:
            return ZERO
        rec = records[0]
        balances = rec.get("balances") or {}
        parts = [
            balances.get("authorized"),
            balances.get("authorized_to_maintain_liabilities"),
            balances.get("unauthorized"),
            rec.get("claimable_balances_amount"),
            rec.get("liquidity_pools_amount"),
            rec.get("contracts_amount"),
        ]
        total = ZERO
        for part in parts:
            if part in (None, ""):
                continue
            amount = to_decimal(part)
            if amount is None:
                raise LedgerRequestError(f"unparseable amount {part!r} for {asset.code}")
            total += amount
        return total

    def fetch_asset_holder_ids(self, asset: AssetInfo, min_balance: Decimal = STROOP, ctx: Optional[RunContext] = None) -> List[str]:
        """Account ids whose balance of `asset` is >= min_balance."""
        if asset.is_native:
            raise ValueError("cannot query holders for native asset")
        ids: List[str] = []
        for rec in self._paginate("/accounts", {"asset": asset.canonical, "limit": str(PAGE_LIMIT)}, ctx):
            raw = _balance_of(_parse_balances(rec.get("balances") or []), asset)
            amount = to_decimal(raw) if raw is not None else None
            if amount is None:
                continue
            if amount >= min_balance:
                ids.append(str(rec.get("account_id") or rec.get("id") or ""))
        return ids

    def fetch_asset_holder_count(self, asset: AssetInfo, min_balance: Decimal = STROOP, ctx: Optional[RunContext] = None) -> int:
        return len(self.fetch_asset_holder_ids(asset, min_balance, ctx))

    def fetch_monthly_eurmtl_outflow(self, account_id: str, fund_addresses: Sequence[str], ctx: Optional[RunContext] = None,
                                     now: Optional[datetime] = None) -> Decimal:
        """
        EURMTL paid from `account_id` to non-fund addresses over the last 30 days,
        counting only operations whose transaction memo mentions "div".
        """
        since = (now or datetime.now(timezone.utc)) - timedelta(days=DIVIDEND_WINDOW_DAYS)
        fund_set = set(fund_addresses)
        total = ZERO
        params = {"join": "transactions", "order": "desc", "limit": str(PAGE_LIMIT)}
        for op in self._paginate(f"/accounts/{account_id}/operations", params, ctx):
            created = _parse_time(str(op.get("created_at", "")))
            if created is None:
                continue
            if created < since:
                # operations are returned newest first
                break
            if op.get("type") not in PAYMENT_TYPES:
                continue
            if op.get("from") != account_id or op.get("to") in fund_set:
                continue
            if op.get("asset_code") != EURMTL.code or op.get("asset_issuer") != EURMTL.issuer:
                continue
            memo = str((op.get("transaction") or {}).get("memo", "") or "").strip().lower()
            if "div" not in memo:
                continue
            amount = to_decimal(op.get("amount"))
            if amount is not None:
                total += amount
        return total
