#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Price discovery through routed multi-hop exchange paths.

Strict-send is tried first ("send `amount` of source, how much dest arrives?").
A transport failure or an unusable answer falls back to strict-receive.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Tuple
import logging

from .sources import LedgerQuoteSource
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import to_decimal
from ..shared.errors import LedgerRequestError, NoPriceError
from ..shared.models import AssetInfo, PathHop, PathProvenance, PathRecord, TokenPairPrice, utcnow

log = logging.getLogger(__name__)


def build_hops(record: PathRecord) -> Tuple[PathHop, ...]:
    hops = []
    prev = record.source_asset_code
    for code in record.path:
        hops.append(PathHop(from_code=prev or "XLM", to_code=code or "XLM"))
        prev = code
    return tuple(hops)


def path_record_to_price(record: PathRecord, source: AssetInfo, dest: AssetInfo, amount: str,
                         now: datetime) -> Optional[TokenPairPrice]:
    """Price = destination / source amount; None if the record is unusable."""
    src_amount = to_decimal(record.source_amount)
    if src_amount is None or src_amount == 0:
        log.warning(f"Unusable path record source={source.code} dest={dest.code} source_amount={record.source_amount!r}")
        return None
    dest_amount = to_decimal(record.destination_amount)
    if dest_amount is None:
        log.warning(f"Unusable path record source={source.code} dest={dest.code} destination_amount={record.destination_amount!r}")
        return None
    return TokenPairPrice(
        base=source,
        quote=dest,
        price=dest_amount / src_amount,
        source_amount_used=amount,
        destination_amount=dest_amount,
        discovered_at=now,
        provenance=PathProvenance(source_amount=src_amount, destination_amount=dest_amount, hops=build_hops(record)),
    )


class PathPriceFinder:
    def __init__(self, ledger: LedgerQuoteSource, clock: Callable[[], datetime] = utcnow) -> None:
        self.ledger = ledger
        self._clock = clock

    def find(self, source: AssetInfo, dest: AssetInfo, amount: str, ctx: Optional[RunContext] = None) -> TokenPairPrice:
        """
        Raises:
            NoPriceError: no usable path in either direction
            LedgerRequestError: strict-receive transport failure
            Cancelled: ctx cancelled
        """
        ctx = ctx or background()
        ctx.check()
        try:
            paths = self.ledger.fetch_strict_send_paths(source, amount, dest, ctx=ctx)
        except LedgerRequestError as e:
            ctx.check()
            log.warning(f"strict-send failed, trying strict-receive source={source.code} dest={dest.code} error={e}")
        else:
            if paths:
                price = path_record_to_price(paths[0], source, dest, amount, self._clock())
                if price is not None:
                    return price

        ctx.check()
        paths = self.ledger.fetch_strict_receive_paths(source, dest, amount, ctx=ctx)
        if not paths:
            raise NoPriceError(f"no path from {source.code} to {dest.code} for amount {amount}")
        price = path_record_to_price(paths[0], source, dest, amount, self._clock())
        if price is None:
            raise NoPriceError(f"no usable path from {source.code} to {dest.code} for amount {amount}")
        return price
