#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Domain Models for the fund indicator pipeline
Defines assets, prices with provenance, manual valuations, ledger query results
and the priced fund structure snapshot.

Decimal amounts are serialized as strings in the JSON form so that no
precision is lost through float conversion.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .decimal_utils import to_decimal, format_ledger, ZERO


# Main fund issuer; issues EURMTL, MTL and MTLRECT
ISSUER_ADDRESS = "GACKTN5DAZGWXRWB2WLM6OPBDHAMT6SJNGLJZPQMEZBUR4JUGBX2UK7V"
# Association issuer; issues MTLAP
MTLAP_ISSUER = "GCNVDZIHGX473FEI7IXCUAEXUJ4BGCKEMHF36VYP5EMS7PX2QBLAMTLA"


class AssetKind(str, Enum):
    NATIVE = "native"
    CREDIT_ALPHANUM4 = "credit_alphanum4"
    CREDIT_ALPHANUM12 = "credit_alphanum12"


def asset_kind_from_code(code: str) -> AssetKind:
    if code in ("XLM", "native"):
        return AssetKind.NATIVE
    if len(code) <= 4:
        return AssetKind.CREDIT_ALPHANUM4
    return AssetKind.CREDIT_ALPHANUM12


@dataclass(frozen=True)
class AssetInfo:
    """A ledger asset. Equality and hashing are structural."""
    code: str
    issuer: str = ""
    kind: AssetKind = AssetKind.NATIVE

    @classmethod
    def from_code(cls, code: str, issuer: str = "") -> "AssetInfo":
        kind = asset_kind_from_code(code)
        if kind is AssetKind.NATIVE:
            return cls(code="XLM", issuer="", kind=kind)
        return cls(code=code, issuer=issuer, kind=kind)

    @classmethod
    def from_canonical(cls, value: str) -> "AssetInfo":
        """Parse "native" or "CODE:ISSUER" (the form used by pool reserves)."""
        if value == "native":
            return XLM
        code, sep, issuer = value.partition(":")
        if not sep or not code or not issuer:
            raise ValueError(f"invalid canonical asset: {value!r}")
        return cls.from_code(code, issuer)

    @property
    def is_native(self) -> bool:
        return self.kind is AssetKind.NATIVE

    @property
    def canonical(self) -> str:
        if self.is_native:
            return "native"
        return f"{self.code}:{self.issuer}"

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "issuer": self.issuer, "type": self.kind.value}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AssetInfo":
        code = str(raw.get("code", ""))
        issuer = str(raw.get("issuer", "") or "")
        kind_raw = raw.get("type")
        if kind_raw:
            kind = AssetKind(kind_raw)
            return cls(code="XLM" if kind is AssetKind.NATIVE else code, issuer=issuer, kind=kind)
        return cls.from_code(code, issuer)


XLM = AssetInfo(code="XLM", issuer="", kind=AssetKind.NATIVE)
EURMTL = AssetInfo(code="EURMTL", issuer=ISSUER_ADDRESS, kind=AssetKind.CREDIT_ALPHANUM12)
MTL = AssetInfo(code="MTL", issuer=ISSUER_ADDRESS, kind=AssetKind.CREDIT_ALPHANUM4)
MTLRECT = AssetInfo(code="MTLRECT", issuer=ISSUER_ADDRESS, kind=AssetKind.CREDIT_ALPHANUM12)
MTLAP = AssetInfo(code="MTLAP", issuer=MTLAP_ISSUER, kind=AssetKind.CREDIT_ALPHANUM4)


# ---------------------------------------------------------------------------
# Ledger query results (shapes returned by the ledger client)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderbookEntry:
    price: str
    amount: str


@dataclass(frozen=True)
class OrderbookSnapshot:
    bids: Tuple[OrderbookEntry, ...] = ()
    asks: Tuple[OrderbookEntry, ...] = ()


@dataclass(frozen=True)
class PathRecord:
    """One routed path. `path` lists intermediate asset codes, "" for native."""
    source_amount: str
    destination_amount: str
    source_asset_code: str = ""
    path: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PoolReserve:
    asset: str  # canonical form
    amount: str


@dataclass(frozen=True)
class LiquidityPool:
    id: str
    reserves: Tuple[PoolReserve, ...]


@dataclass(frozen=True)
class BalanceLine:
    asset_type: str
    balance: str
    asset_code: str = ""
    asset_issuer: str = ""
    liquidity_pool_id: str = ""


@dataclass(frozen=True)
class LedgerAccount:
    account_id: str
    balances: Tuple[BalanceLine, ...] = ()
    data: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Prices and provenance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PathHop:
    from_code: str
    to_code: str


@dataclass(frozen=True)
class PathProvenance:
    source_amount: Decimal
    destination_amount: Decimal
    hops: Tuple[PathHop, ...] = ()


@dataclass(frozen=True)
class PriceQuote:
    ask: Optional[Decimal] = None
    bid: Optional[Decimal] = None

    @property
    def has_price(self) -> bool:
        return self.ask is not None or self.bid is not None


@dataclass(frozen=True)
class OrderbookData:
    orderbook: PriceQuote = PriceQuote()
    amm: PriceQuote = PriceQuote()
    amm_pool_id: Optional[str] = None
    best_source: str = "none"  # "orderbook" | "amm" | "none"


@dataclass(frozen=True)
class OrderbookProvenance:
    price_type: str  # "bid" | "ask"
    data: OrderbookData


@dataclass(frozen=True)
class BestProvenance:
    path_price: Decimal
    orderbook_price: Decimal
    chosen_source: str  # "path" | "orderbook"
    path: Optional[PathProvenance] = None
    orderbook: Optional[OrderbookProvenance] = None


Provenance = Union[PathProvenance, OrderbookProvenance, BestProvenance]


def _dec_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return format(value.normalize(), "f") if value != 0 else "0"


def _quote_to_dict(q: PriceQuote) -> Dict[str, Optional[str]]:
    return {"ask": _dec_str(q.ask), "bid": _dec_str(q.bid)}


def provenance_to_dict(p: Optional[Provenance]) -> Optional[Dict[str, Any]]:
    """Serialize a provenance variant; the only place that inspects its shape."""
    if p is None:
        return None
    if isinstance(p, PathProvenance):
        return {
            "source": "path",
            "source_amount": _dec_str(p.source_amount),
            "destination_amount": _dec_str(p.destination_amount),
            "path": [{"from": h.from_code, "to": h.to_code} for h in p.hops],
        }
    if isinstance(p, OrderbookProvenance):
        return {
            "source": "orderbook",
            "price_type": p.price_type,
            "orderbook": _quote_to_dict(p.data.orderbook),
            "amm": _quote_to_dict(p.data.amm),
            "amm_pool_id": p.data.amm_pool_id,
            "best_source": p.data.best_source,
        }
    if isinstance(p, BestProvenance):
        return {
            "source": "best",
            "chosen_source": p.chosen_source,
            "path_price": _dec_str(p.path_price),
            "orderbook_price": _dec_str(p.orderbook_price),
            "path_details": provenance_to_dict(p.path),
            "orderbook_details": provenance_to_dict(p.orderbook),
        }
    raise TypeError(f"unknown provenance type: {type(p).__name__}")


@dataclass(frozen=True)
class TokenPairPrice:
    """Price of `base` expressed in `quote` (1 base = price quote)."""
    base: AssetInfo
    quote: AssetInfo
    price: Decimal
    source_amount_used: str
    destination_amount: Decimal
    discovered_at: datetime
    provenance: Provenance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": self.base.canonical,
            "quote": self.quote.canonical,
            "price": _dec_str(self.price),
            "source_amount": self.source_amount_used,
            "destination_amount": _dec_str(self.destination_amount),
            "discovered_at": self.discovered_at.isoformat(),
            "details": provenance_to_dict(self.provenance),
        }


@dataclass
class TokenPrices:
    """Prices and values of one holding against EURMTL and XLM."""
    price_eurmtl: Optional[Decimal] = None
    price_xlm: Optional[Decimal] = None
    value_eurmtl: Optional[Decimal] = None
    value_xlm: Optional[Decimal] = None
    provenance_eurmtl: Optional[Provenance] = None
    provenance_xlm: Optional[Provenance] = None


# ---------------------------------------------------------------------------
# Manual valuations
# ---------------------------------------------------------------------------

class ValuationKind(str, Enum):
    NFT = "nft"    # total value of an indivisible holding
    UNIT = "unit"  # per-unit price


@dataclass(frozen=True)
class ReferenceValue:
    value: Decimal


@dataclass(frozen=True)
class ExternalValue:
    symbol: str
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None


ValuationValue = Union[ReferenceValue, ExternalValue]


@dataclass(frozen=True)
class AssetValuation:
    token_code: str
    kind: ValuationKind
    raw_value: ValuationValue
    source_account: str


@dataclass(frozen=True)
class ResolvedAssetValuation:
    valuation: AssetValuation
    value_in_eurmtl: Decimal


# ---------------------------------------------------------------------------
# Fund structure snapshot
# ---------------------------------------------------------------------------

class AccountType(str, Enum):
    ISSUER = "issuer"
    SUBFOND = "subfond"
    MUTUAL = "mutual"
    OPERATIONAL = "operational"
    OTHER = "other"


@dataclass(frozen=True)
class FundAccount:
    name: str
    type: AccountType
    address: str
    description: str = ""


def _opt_dec(raw: Any) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    return to_decimal(raw)


def _ledger_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return format_ledger(value)


@dataclass
class TokenPriceWithBalance:
    asset: AssetInfo
    balance: Decimal
    price_eurmtl: Optional[Decimal] = None
    price_xlm: Optional[Decimal] = None
    value_eurmtl: Optional[Decimal] = None
    value_xlm: Optional[Decimal] = None
    provenance_eurmtl: Optional[Provenance] = None
    provenance_xlm: Optional[Provenance] = None
    is_nft: bool = False
    valuation_account: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset": self.asset.to_dict(),
            "balance": format_ledger(self.balance),
            "price_in_eurmtl": _dec_str(self.price_eurmtl),
            "price_in_xlm": _dec_str(self.price_xlm),
            "value_in_eurmtl": _ledger_str(self.value_eurmtl),
            "value_in_xlm": _ledger_str(self.value_xlm),
            "details_eurmtl": provenance_to_dict(self.provenance_eurmtl),
            "details_xlm": provenance_to_dict(self.provenance_xlm),
            "is_nft": self.is_nft,
            "nft_valuation_account": self.valuation_account,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TokenPriceWithBalance":
        # Provenance is audit output only and is not read back
        return cls(
            asset=AssetInfo.from_dict(raw.get("asset") or {}),
            balance=_opt_dec(raw.get("balance")) or ZERO,
            price_eurmtl=_opt_dec(raw.get("price_in_eurmtl")),
            price_xlm=_opt_dec(raw.get("price_in_xlm")),
            value_eurmtl=_opt_dec(raw.get("value_in_eurmtl")),
            value_xlm=_opt_dec(raw.get("value_in_xlm")),
            is_nft=bool(raw.get("is_nft", False)),
            valuation_account=raw.get("nft_valuation_account"),
        )


@dataclass
class FundAccountPortfolio:
    address: str
    name: str
    type: AccountType
    description: str = ""
    tokens: List[TokenPriceWithBalance] = field(default_factory=list)
    xlm_balance: Decimal = ZERO
    xlm_price_eurmtl: Optional[Decimal] = None
    total_eurmtl: Decimal = ZERO
    total_xlm: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.address,
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "tokens": [t.to_dict() for t in self.tokens],
            "xlm_balance": format_ledger(self.xlm_balance),
            "xlm_price_in_eurmtl": _dec_str(self.xlm_price_eurmtl),
            "total_eurmtl": format_ledger(self.total_eurmtl),
            "total_xlm": format_ledger(self.total_xlm),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FundAccountPortfolio":
        return cls(
            address=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            type=AccountType(raw.get("type", "other")),
            description=str(raw.get("description", "") or ""),
            tokens=[TokenPriceWithBalance.from_dict(t) for t in raw.get("tokens") or []],
            xlm_balance=_opt_dec(raw.get("xlm_balance")) or ZERO,
            xlm_price_eurmtl=_opt_dec(raw.get("xlm_price_in_eurmtl")),
            total_eurmtl=_opt_dec(raw.get("total_eurmtl")) or ZERO,
            total_xlm=_opt_dec(raw.get("total_xlm")) or ZERO,
        )


@dataclass
class AggregatedTotals:
    total_eurmtl: Decimal = ZERO
    total_xlm: Decimal = ZERO
    account_count: int = 0
    token_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_eurmtl": format_ledger(self.total_eurmtl),
            "total_xlm": format_ledger(self.total_xlm),
            "account_count": self.account_count,
            "token_count": self.token_count,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AggregatedTotals":
        return cls(
            total_eurmtl=_opt_dec(raw.get("total_eurmtl")) or ZERO,
            total_xlm=_opt_dec(raw.get("total_xlm")) or ZERO,
            account_count=int(raw.get("account_count", 0)),
            token_count=int(raw.get("token_count", 0)),
        )


@dataclass
class FundLiveMetrics:
    """Live values embedded at snapshot time so history stays self-describing."""
    mtl_market_price: Optional[Decimal] = None
    mtl_circulation: Optional[Decimal] = None
    mtlrect_circulation: Optional[Decimal] = None
    monthly_dividends: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "mtl_market_price": _dec_str(self.mtl_market_price),
            "mtl_circulation": _dec_str(self.mtl_circulation),
            "mtlrect_circulation": _dec_str(self.mtlrect_circulation),
            "monthly_dividends": _dec_str(self.monthly_dividends),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FundLiveMetrics":
        return cls(
            mtl_market_price=_opt_dec(raw.get("mtl_market_price")),
            mtl_circulation=_opt_dec(raw.get("mtl_circulation")),
            mtlrect_circulation=_opt_dec(raw.get("mtlrect_circulation")),
            monthly_dividends=_opt_dec(raw.get("monthly_dividends")),
        )


@dataclass
class FundStructureData:
    accounts: List[FundAccountPortfolio] = field(default_factory=list)
    mutual_funds: List[FundAccountPortfolio] = field(default_factory=list)
    other_accounts: List[FundAccountPortfolio] = field(default_factory=list)
    aggregated_totals: AggregatedTotals = field(default_factory=AggregatedTotals)
    live_metrics: Optional[FundLiveMetrics] = None
    warnings: List[str] = field(default_factory=list)

    def all_accounts(self) -> List[FundAccountPortfolio]:
        return [*self.accounts, *self.mutual_funds, *self.other_accounts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "mutual_funds": [a.to_dict() for a in self.mutual_funds],
            "other_accounts": [a.to_dict() for a in self.other_accounts],
            "aggregated_totals": self.aggregated_totals.to_dict(),
            "live_metrics": self.live_metrics.to_dict() if self.live_metrics else None,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FundStructureData":
        live = raw.get("live_metrics")
        return cls(
            accounts=[FundAccountPortfolio.from_dict(a) for a in raw.get("accounts") or []],
            mutual_funds=[FundAccountPortfolio.from_dict(a) for a in raw.get("mutual_funds") or []],
            other_accounts=[FundAccountPortfolio.from_dict(a) for a in raw.get("other_accounts") or []],
            aggregated_totals=AggregatedTotals.from_dict(raw.get("aggregated_totals") or {}),
            live_metrics=FundLiveMetrics.from_dict(live) if isinstance(live, dict) else None,
            warnings=[str(w) for w in raw.get("warnings") or []],
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
