#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Manual valuation scanner.

Reads `<TOKEN>_1COST` (per-unit) and `<TOKEN>_COST` (whole indivisible holding)
DATA entries from every registry account, at most three accounts at a time.
Completion order is arbitrary; the result is made deterministic by sorting on
source account before keeping the first entry per (token, kind).
"""
from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import base64
import binascii
import logging

from .accounts import FundRegistry
from .sources import LedgerAccountSource
from .valuation_parser import parse_value
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import STROOP, to_decimal
from ..shared.errors import LedgerRequestError, ValuationParseError, ValuationScanError
from ..shared.models import AssetValuation, ValuationKind

log = logging.getLogger(__name__)

SCAN_CONCURRENCY = 3
POLL_INTERVAL_S = 0.05
UNIT_SUFFIX = "_1COST"
NFT_SUFFIX = "_COST"


def classify_key(key: str) -> Optional[Tuple[str, ValuationKind]]:
    """Token code and valuation kind for a DATA key, None if it is not a valuation."""
    # _1COST ends with _COST too, so it must be checked first
    if key.endswith(UNIT_SUFFIX):
        return key[: -len(UNIT_SUFFIX)], ValuationKind.UNIT
    if key.endswith(NFT_SUFFIX):
        return key[: -len(NFT_SUFFIX)], ValuationKind.NFT
    return None


def parse_data_entries(account_id: str, data: Dict[str, str]) -> List[AssetValuation]:
    valuations: List[AssetValuation] = []
    for key in sorted(data):
        classified = classify_key(key)
        if classified is None:
            continue
        token_code, kind = classified
        try:
            decoded = base64.b64decode(data[key], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            log.warning(f"Failed to decode DATA entry account={account_id} key={key} error={e}")
            continue
        try:
            value = parse_value(decoded)
        except ValuationParseError as e:
            log.warning(f"Skipping unparseable cost DATA entry account={account_id} key={key} value={decoded!r} error={e}")
            continue
        valuations.append(AssetValuation(token_code=token_code, kind=kind, raw_value=value, source_account=account_id))
    return valuations


def deduplicate_valuations(valuations: Iterable[AssetValuation]) -> List[AssetValuation]:
    """Keep the lexicographically smallest source account per (token_code, kind)."""
    ordered = sorted(valuations, key=lambda v: v.source_account)
    seen = set()
    result: List[AssetValuation] = []
    for v in ordered:
        group = (v.token_code, v.kind)
        if group in seen:
            log.info(f"Dropping duplicate valuation token={v.token_code} kind={v.kind.value} source={v.source_account}")
            continue
        seen.add(group)
        result.append(v)
    return result


def is_nft_balance(balance: Any) -> bool:
    """A holding of exactly one stroop is an indivisible (NFT-like) unit."""
    d = to_decimal(balance)
    return d is not None and d == STROOP


def lookup_valuation(token_code: str, balance: Any, owner_account: str,
                     valuations: Sequence[AssetValuation]) -> Optional[AssetValuation]:
    """
    NFT-like holdings prefer a whole-holding valuation and fall back to a
    per-unit one; regular holdings do the opposite. Within a kind the owner's
    own valuation wins over other accounts'.
    """
    if is_nft_balance(balance):
        preference = (ValuationKind.NFT, ValuationKind.UNIT)
    else:
        preference = (ValuationKind.UNIT, ValuationKind.NFT)

    for kind in preference:
        candidates = [v for v in valuations if v.token_code == token_code and v.kind is kind]
        if not candidates:
            continue
        for v in candidates:
            if v.source_account == owner_account:
                return v
        return candidates[0]
    return None


def merge_account_valuations(account_id: str, valuations: Sequence[AssetValuation]) -> List[AssetValuation]:
    """Owner's entries first, then other accounts' entries for keys the owner does not define."""
    own = [v for v in valuations if v.source_account == account_id]
    taken = {(v.token_code, v.kind) for v in own}
    others = [v for v in valuations if v.source_account != account_id and (v.token_code, v.kind) not in taken]
    return own + others


class ValuationScanner:
    def __init__(self, fetcher: LedgerAccountSource, registry: FundRegistry, concurrency: int = SCAN_CONCURRENCY) -> None:
        self.fetcher = fetcher
        self.registry = registry
        self.concurrency = max(1, concurrency)

    def scan_account(self, account_id: str, ctx: Optional[RunContext] = None) -> List[AssetValuation]:
        ctx = ctx or background()
        ctx.check()
        account = self.fetcher.fetch_account(account_id, ctx=ctx)
        return parse_data_entries(account_id, account.data)

    def fetch_all_valuations(self, ctx: Optional[RunContext] = None) -> List[AssetValuation]:
        """
        Scan every registry account.

        Raises:
            ValuationScanError: every account failed
            Cancelled: ctx cancelled
        """
        ctx = ctx or background()
        addresses = self.registry.addresses()
        if not addresses:
            return []

        collected: List[AssetValuation] = []
        failures: Dict[str, Exception] = {}
        pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="valuation-scan")
        try:
            futures: Dict[Future, str] = {pool.submit(self.scan_account, a, ctx): a for a in addresses}
            pending = set(futures)
            while pending:
                ctx.check()
                done, pending = wait(pending, timeout=POLL_INTERVAL_S, return_when=FIRST_COMPLETED)
                for fut in done:
                    address = futures[fut]
                    try:
                        collected.extend(fut.result())
                    except LedgerRequestError as e:
                        log.warning(f"Valuation scan failed account={address} error={e}")
                        failures[address] = e
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        if len(failures) == len(addresses):
            raise ValuationScanError(f"valuation scan failed for all {len(addresses)} accounts")

        log.info(f"Valuation scan complete: {len(collected)} entries from {len(addresses) - len(failures)}/{len(addresses)} accounts")
        return deduplicate_valuations(collected)
