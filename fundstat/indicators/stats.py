#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Sample statistics over Decimal series.

Computation is done in float64 with numpy (scipy for the normal quantile); results are converted back to
Decimal. Degenerate inputs (too few samples) yield zero.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Sequence
import math

import numpy as np
from scipy.stats import norm

ZERO = Decimal(0)


def _array(values: Sequence[Decimal]) -> np.ndarray:
    return np.array([float(v) for v in values], dtype=np.float64)


def _to_decimal(x: float) -> Decimal:
    if not math.isfinite(x):
        return ZERO
    return Decimal(repr(float(x)))


def mean(values: Sequence[Decimal]) -> Decimal:
    if len(values) == 0:
        return ZERO
    return sum(values, ZERO) / Decimal(len(values))


def variance(values: Sequence[Decimal]) -> Decimal:
    """Sample variance (n - 1 denominator)."""
    if len(values) < 2:
        return ZERO
    return _to_decimal(np.var(_array(values), ddof=1))


def std_dev(values: Sequence[Decimal]) -> Decimal:
    if len(values) < 2:
        return ZERO
    return _to_decimal(np.std(_array(values), ddof=1))


def downside_std_dev(returns: Sequence[Decimal], threshold: Decimal = ZERO) -> Decimal:
    """Root mean square shortfall of the returns below `threshold`."""
    arr = _array(returns)
    t = float(threshold)
    downside = arr[arr < t]
    if downside.size == 0:
        return ZERO
    return _to_decimal(np.sqrt(np.mean((downside - t) ** 2)))


def covariance(a: Sequence[Decimal], b: Sequence[Decimal]) -> Decimal:
    """Sample covariance over the common prefix of both series."""
    n = min(len(a), len(b))
    if n < 2:
        return ZERO
    return _to_decimal(np.cov(_array(a[:n]), _array(b[:n]), ddof=1)[0][1])


def median(values: Sequence[Decimal]) -> Decimal:
    if len(values) == 0:
        return ZERO
    return _to_decimal(np.median(_array(values)))


def normal_quantile(p: float) -> float:
    """Inverse of the standard normal CDF; 0 outside (0, 1)."""
    if p <= 0 or p >= 1:
        return 0.0
    return float(norm.ppf(p))


def simple_returns(prices: Sequence[Decimal]) -> list:
    """Period-over-period returns; pairs with a zero starting price are skipped."""
    returns = []
    for prev, cur in zip(prices, prices[1:]):
        if prev == 0:
            continue
        returns.append((cur - prev) / prev)
    return returns
