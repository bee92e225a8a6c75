#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fund structure builder.

Assembles one FundStructureData snapshot: scans manual valuations, fetches
every registry account's balances, prices each holding (manual valuation
overrides win over market prices), and computes account and fund totals.

Requests are paced (token_delay between holdings, account_delay between
accounts); the pauses wait on the RunContext so a cancelled run stops at the
next holding.
"""
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
import logging

from .accounts import FundRegistry
from .price_service import ABSTAIN_ERRORS, PriceDiscoveryService, SPOT_AMOUNT
from .sources import LedgerAccountSource
from .valuation_resolver import ValuationResolver
from .valuation_scanner import ValuationScanner, is_nft_balance, lookup_valuation, merge_account_valuations
from ..shared.cancellation import RunContext, background
from ..shared.decimal_utils import ZERO, divide_with_precision, multiply_with_precision, safe_parse
from ..shared.errors import QuoteUnavailableError
from ..shared.models import (
    AggregatedTotals,
    AssetInfo,
    AssetValuation,
    EURMTL,
    FundAccount,
    FundAccountPortfolio,
    FundStructureData,
    LedgerAccount,
    TokenPriceWithBalance,
    XLM,
)

log = logging.getLogger(__name__)

POOL_SHARE_TYPE = "liquidity_pool_shares"


def split_balances(account: LedgerAccount) -> Tuple[List[Tuple[AssetInfo, Decimal]], Decimal]:
    """Issued-asset holdings and the native XLM balance; pool shares are skipped."""
    tokens: List[Tuple[AssetInfo, Decimal]] = []
    xlm_balance = ZERO
    for line in account.balances:
        if line.asset_type == "native":
            xlm_balance = safe_parse(line.balance)
            continue
        if line.asset_type == POOL_SHARE_TYPE:
            continue
        tokens.append((AssetInfo.from_code(line.asset_code, line.asset_issuer), safe_parse(line.balance)))
    return tokens, xlm_balance


def account_total_eurmtl(tokens: Sequence[TokenPriceWithBalance], xlm_balance: Decimal,
                         xlm_price_eurmtl: Optional[Decimal]) -> Decimal:
    """NFT-like holdings count their price as the total value; XLM is added when its rate is known."""
    total = ZERO
    for t in tokens:
        price = t.price_eurmtl or ZERO
        total += price if t.is_nft else t.balance * price
    if xlm_price_eurmtl is not None:
        total += xlm_balance * xlm_price_eurmtl
    return total


def account_total_xlm(tokens: Sequence[TokenPriceWithBalance], xlm_balance: Decimal) -> Decimal:
    total = ZERO
    for t in tokens:
        price = t.price_xlm or ZERO
        total += price if t.is_nft else t.balance * price
    return total + xlm_balance


def fund_totals(accounts: Sequence[FundAccountPortfolio]) -> AggregatedTotals:
    return AggregatedTotals(
        total_eurmtl=sum((a.total_eurmtl for a in accounts), ZERO),
        total_xlm=sum((a.total_xlm for a in accounts), ZERO),
        account_count=len(accounts),
        token_count=sum(len(a.tokens) for a in accounts),
    )


class FundStructureBuilder:
    def __init__(self, account_source: LedgerAccountSource, price_service: PriceDiscoveryService,
                 scanner: ValuationScanner, resolver: ValuationResolver, registry: FundRegistry,
                 account_delay: float = 0.2, token_delay: float = 0.1) -> None:
        self.account_source = account_source
        self.price_service = price_service
        self.scanner = scanner
        self.resolver = resolver
        self.registry = registry
        self.account_delay = account_delay
        self.token_delay = token_delay

    def build(self, ctx: Optional[RunContext] = None) -> FundStructureData:
        """
        Raises:
            ValuationScanError: no account could be scanned for valuations
            LedgerRequestError: an account's balances could not be fetched
            Cancelled: ctx cancelled
        """
        ctx = ctx or background()
        valuations = self.scanner.fetch_all_valuations(ctx)

        warnings: List[str] = []

        def build_group(accounts: Sequence[FundAccount]) -> List[FundAccountPortfolio]:
            group: List[FundAccountPortfolio] = []
            for account in accounts:
                portfolio, account_warnings = self.build_account(account, valuations, ctx)
                group.append(portfolio)
                warnings.extend(account_warnings)
                ctx.wait(self.account_delay)
            return group

        main = build_group(self.registry.main_accounts())
        mutual = build_group(self.registry.mutual_accounts())
        other = build_group(self.registry.other_accounts())
        data = FundStructureData(
            accounts=main,
            mutual_funds=mutual,
            other_accounts=other,
            aggregated_totals=fund_totals(main),
            warnings=warnings,
        )
        log.info(f"Fund structure built: {len(main) + len(mutual) + len(other)} accounts, total={data.aggregated_totals.total_eurmtl} EURMTL, {len(warnings)} warnings")
        return data

    def build_account(self, account: FundAccount, valuations: Sequence[AssetValuation],
                      ctx: RunContext) -> Tuple[FundAccountPortfolio, List[str]]:
        ledger_account = self.account_source.fetch_account(account.address, ctx=ctx)
        holdings, xlm_balance = split_balances(ledger_account)
        account_valuations = merge_account_valuations(account.address, valuations)

        tokens: List[TokenPriceWithBalance] = []
        warnings: List[str] = []
        for asset, balance in holdings:
            token = self.price_token(asset, balance, account.address, account_valuations, ctx)
            if token.price_eurmtl is None and token.price_xlm is None:
                w = f"failed to price {asset.code} on {account.name}"
                log.warning(w)
                warnings.append(w)
            tokens.append(token)
            ctx.wait(self.token_delay)

        xlm_price: Optional[Decimal] = None
        try:
            xlm_price = self.price_service.get_price(XLM, EURMTL, SPOT_AMOUNT, ctx).price
        except ABSTAIN_ERRORS as e:
            w = f"XLM price unavailable for {account.name}, EURMTL total excludes XLM"
            log.warning(f"{w}: {e}")
            warnings.append(w)

        portfolio = FundAccountPortfolio(
            address=account.address,
            name=account.name,
            type=account.type,
            description=account.description,
            tokens=tokens,
            xlm_balance=xlm_balance,
            xlm_price_eurmtl=xlm_price,
            total_eurmtl=account_total_eurmtl(tokens, xlm_balance, xlm_price),
            total_xlm=account_total_xlm(tokens, xlm_balance),
        )
        log.debug(f"Account {account.name}: {len(tokens)} tokens, total={portfolio.total_eurmtl} EURMTL")
        return portfolio, warnings

    def price_token(self, asset: AssetInfo, balance: Decimal, owner: str,
                    valuations: Sequence[AssetValuation], ctx: RunContext) -> TokenPriceWithBalance:
        """Market prices for one holding, replaced by a resolved manual valuation when one applies."""
        nft = is_nft_balance(balance)
        token = TokenPriceWithBalance(asset=asset, balance=balance, is_nft=nft)

        try:
            prices = self.price_service.get_token_prices(asset, balance, ctx)
        except ABSTAIN_ERRORS as e:
            log.debug(f"No market price for {asset.code}: {e}")
        else:
            token.price_eurmtl = prices.price_eurmtl
            token.price_xlm = prices.price_xlm
            token.value_eurmtl = prices.value_eurmtl
            token.value_xlm = prices.value_xlm
            token.provenance_eurmtl = prices.provenance_eurmtl
            token.provenance_xlm = prices.provenance_xlm

        valuation = lookup_valuation(asset.code, balance, owner, valuations)
        if valuation is None:
            return token

        try:
            resolved = self.resolver.resolve_valuation(valuation)
        except QuoteUnavailableError as e:
            log.warning(f"Manual valuation resolution failed, using market price token={asset.code} "
                        f"kind={valuation.kind.value} source={valuation.source_account} error={e}")
            return token

        value = resolved.value_in_eurmtl
        token.price_eurmtl = value
        token.value_eurmtl = value if nft else Decimal(multiply_with_precision(balance, value))
        token.valuation_account = valuation.source_account

        try:
            xlm_rate = self.price_service.get_price(XLM, EURMTL, SPOT_AMOUNT, ctx)
        except ABSTAIN_ERRORS as e:
            log.warning(f"Failed to derive XLM price for valuation override token={asset.code} error={e}")
            return token
        xlm_price = Decimal(divide_with_precision(value, xlm_rate.price))
        token.price_xlm = xlm_price
        token.value_xlm = xlm_price if nft else Decimal(multiply_with_precision(balance, xlm_price))
        return token
