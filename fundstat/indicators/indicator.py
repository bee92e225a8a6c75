#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Indicator records, the canonical id -> (name, unit) catalog, and the
Calculator base class.

A calculator may attach a fallback name/unit to what it returns; the catalog
entry wins whenever the id is listed.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, TYPE_CHECKING

from ..shared.cancellation import RunContext
from ..shared.models import FundStructureData

if TYPE_CHECKING:
    from .history import HistoricalIndicatorAccessor


@dataclass(frozen=True)
class Indicator:
    id: int
    name: str
    value: Decimal
    unit: str

    def to_dict(self) -> Dict[str, object]:
        value = self.value if self.value != 0 else Decimal(0)
        return {"id": self.id, "name": self.name, "value": format(value.normalize(), "f"), "unit": self.unit}


def make_indicator(indicator_id: int, value: Decimal, name: str = "", unit: str = "") -> Indicator:
    return Indicator(id=indicator_id, name=name, value=value, unit=unit)


@dataclass(frozen=True)
class IndicatorMeta:
    name: str
    unit: str


class IndicatorCatalog:
    """Read-only id -> IndicatorMeta mapping, built once at startup."""

    def __init__(self, entries: Mapping[int, Tuple[str, str]]) -> None:
        self._entries: Mapping[int, IndicatorMeta] = MappingProxyType(
            {int(k): IndicatorMeta(name=v[0], unit=v[1]) for k, v in entries.items()}
        )

    def get(self, indicator_id: int) -> Optional[IndicatorMeta]:
        return self._entries.get(indicator_id)

    def __contains__(self, indicator_id: object) -> bool:
        return indicator_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def apply(self, indicator: Indicator) -> Indicator:
        meta = self._entries.get(indicator.id)
        if meta is None:
            return indicator
        return replace(indicator, name=meta.name, unit=meta.unit)


DEFAULT_CATALOG = IndicatorCatalog({
    1: ("Market Cap EUR", "EURMTL"),
    2: ("Market Cap BTC", "BTC"),
    3: ("Assets Value MTLF", "EURMTL"),
    4: ("Operating Balance", "EURMTL"),
    5: ("Total Shares", "shares"),
    6: ("MTL in circulation", "MTL"),
    7: ("MTLRECT in circulation", "MTLRECT"),
    8: ("Share Book Value", "EURMTL"),
    10: ("Share Market Price", "EURMTL"),
    11: ("Monthly Dividends", "EURMTL"),
    15: ("Dividends per Share", "EURMTL"),
    16: ("Annual Dividend Yield 1", "%"),
    17: ("Annual Dividend Yield 2", "%"),
    18: ("Shareholders by EURMTL", "accounts"),
    21: ("Average Shareholding", "shares"),
    22: ("Average Value per Shareholder", "EURMTL"),
    23: ("Median Shareholding Size", "shares"),
    24: ("Tokenomics Participants", "accounts"),
    25: ("EURMTL Payment per Day", "EURMTL"),
    26: ("EURMTL Payment Total 30d", "EURMTL"),
    27: ("Shareholders with at least one share", "accounts"),
    30: ("Price/Book Ratio", "ratio"),
    33: ("EPS", "EURMTL"),
    34: ("P/E", "ratio"),
    40: ("MTLAP Holders", "accounts"),
    43: ("Total ROI", "%"),
    44: ("Beta", "ratio"),
    45: ("Sharpe Ratio", "ratio"),
    46: ("Sortino Ratio", "ratio"),
    47: ("Value at Risk 95%", "%"),
    48: ("Dividends to Book Value", "ratio"),
    49: ("MTLRECT Market Price", "EURMTL"),
    51: ("DEFI Value", "EURMTL"),
    52: ("MCITY Value", "EURMTL"),
    53: ("MABIZ Value", "EURMTL"),
    54: ("Annual DPS", "EURMTL"),
    55: ("Price Year Ago", "EURMTL"),
    56: ("APART Value", "EURMTL"),
    57: ("MFB Value", "EURMTL"),
    58: ("MAIN ISSUER Value", "EURMTL"),
    59: ("BOSS Value", "EURMTL"),
    60: ("ADMIN Value", "EURMTL"),
    61: ("BTC Rate", "EURMTL"),
})


class Calculator:
    """
    One node of the indicator graph.

    Subclasses declare the ids they produce and the ids they read, and compute
    their indicators from the snapshot plus already computed dependencies.
    """

    name: str = ""

    def ids(self) -> FrozenSet[int]:
        raise NotImplementedError

    def dependencies(self) -> FrozenSet[int]:
        return frozenset()

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history: Optional["HistoricalIndicatorAccessor"] = None,
                  ctx: Optional[RunContext] = None) -> List[Indicator]:
        raise NotImplementedError

    def describe(self) -> str:
        return self.name or type(self).__name__


def values_by_id(indicators: Iterable[Indicator]) -> Dict[int, Decimal]:
    return {i.id: i.value for i in indicators}
