#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Layer 2: market capitalisation (I1, I2), book value per share (I8) and
price-to-book (I30).
"""
from __future__ import annotations

from typing import FrozenSet, List, Mapping, Optional

from .indicator import Calculator, Indicator, make_indicator
from ..shared.cancellation import RunContext
from ..shared.decimal_utils import safe_div
from ..shared.models import FundStructureData


class Layer2Calculator(Calculator):
    name = "layer2"

    def ids(self) -> FrozenSet[int]:
        return frozenset({1, 2, 8, 30})

    def dependencies(self) -> FrozenSet[int]:
        return frozenset({3, 5, 10, 61})

    def calculate(self, data: FundStructureData, deps: Mapping[int, Indicator],
                  history=None, ctx: Optional[RunContext] = None) -> List[Indicator]:
        i3 = deps[3].value
        i5 = deps[5].value
        i10 = deps[10].value
        i61 = deps[61].value

        i1 = i5 * i10
        i2 = safe_div(i1, i61)
        i8 = safe_div(i3, i5)
        i30 = safe_div(i10, i8)

        return [
            make_indicator(1, i1),
            make_indicator(2, i2),
            make_indicator(8, i8),
            make_indicator(30, i30),
        ]
