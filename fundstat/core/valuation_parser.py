#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Parser for manual valuation strings stored in account DATA entries.

Accepted shapes, in precedence order:
1. compound external quote: "AU 2.5oz", "AU 1g"
2. bare external symbol: "BTC"
3. EURMTL amount with locale normalization: "0,8", "1.234,56", "1.5"
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
import re

from ..shared.errors import ValuationParseError
from ..shared.models import ExternalValue, ReferenceValue, ValuationValue

EXTERNAL_SYMBOLS = ("BTC", "ETH", "XLM", "Sats", "USD", "AU")

_COMPOUND_RE = re.compile(r"^(\w+)\s+([\d.]+)(g|oz)$", re.ASCII)
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


def normalize_decimal(s: str) -> str:
    """
    "0,8" -> "0.8", "1.234,56" -> "1234.56", "1.5" -> "1.5".

    With both separators present the dot is a thousands separator; a lone comma
    is the decimal point.
    """
    has_comma = "," in s
    if has_comma and "." in s:
        s = s.replace(".", "")
        return s.replace(",", ".", 1)
    if has_comma:
        return s.replace(",", ".", 1)
    return s


def _parse_decimal(s: str) -> Decimal:
    if not _NUMBER_RE.match(s):
        raise InvalidOperation(s)
    return Decimal(s)


def parse_value(raw: str) -> ValuationValue:
    """
    Raises:
        ValuationParseError: empty, unknown symbol, non-positive or malformed value
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValuationParseError("empty value")

    m = _COMPOUND_RE.match(raw)
    if m:
        symbol, qty_raw, unit = m.group(1), m.group(2), m.group(3)
        if symbol not in EXTERNAL_SYMBOLS:
            raise ValuationParseError(f"unknown symbol in compound value: {symbol}")
        try:
            quantity = _parse_decimal(qty_raw)
        except InvalidOperation:
            raise ValuationParseError(f"invalid quantity in compound value: {qty_raw}")
        if quantity <= 0:
            raise ValuationParseError(f"invalid quantity in compound value: {qty_raw}")
        return ExternalValue(symbol=symbol, quantity=quantity, unit=unit)

    if raw in EXTERNAL_SYMBOLS:
        return ExternalValue(symbol=raw)

    try:
        value = _parse_decimal(normalize_decimal(raw))
    except InvalidOperation:
        raise ValuationParseError(f"invalid value: {raw!r}")
    if value <= 0:
        raise ValuationParseError(f"value must be positive, got: {value}")
    return ReferenceValue(value=value)
