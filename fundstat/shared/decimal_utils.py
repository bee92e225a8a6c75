#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Decimal helpers for ledger amounts.

The ledger stores amounts with 7 fractional digits. All monetary math goes
through Decimal and is formatted back to that precision with trailing zeros
stripped ("12.5000000" -> "12.5", "3.0000000" -> "3").
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Optional
import logging

log = logging.getLogger(__name__)

LEDGER_PRECISION = 7
LEDGER_QUANTUM = Decimal(1).scaleb(-LEDGER_PRECISION)
# Smallest representable ledger amount; a balance equal to it is an indivisible holding
STROOP = LEDGER_QUANTUM
ZERO = Decimal(0)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a ledger amount; None when it is missing, unparseable or non-finite."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def safe_parse(value: Any) -> Decimal:
    """Parse a ledger amount, logging and returning zero on failure."""
    d = to_decimal(value)
    if d is None:
        log.warning(f"Failed to parse decimal value={value!r}, using 0")
        return ZERO
    return d


def format_ledger(value: Decimal) -> str:
    """Round to ledger precision and strip trailing zeros."""
    q = value.quantize(LEDGER_QUANTUM, rounding=ROUND_HALF_EVEN)
    if q == 0:
        return "0"
    s = format(q, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


def quantize_ledger(value: Decimal) -> Decimal:
    return Decimal(format_ledger(value))


def multiply_with_precision(a: Any, b: Any) -> str:
    return format_ledger(safe_parse(a) * safe_parse(b))


def divide_with_precision(a: Any, b: Any) -> str:
    divisor = safe_parse(b)
    if divisor == 0:
        return "0"
    return format_ledger(safe_parse(a) / divisor)


def safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Division that yields zero for a zero divisor."""
    if denominator == 0:
        return ZERO
    return numerator / denominator
