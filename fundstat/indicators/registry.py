#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Indicator registry: owns the calculators and evaluates them in dependency order.
"""
from __future__ import annotations

from typing import Dict, List, Optional
import logging

from .history import HistoricalIndicatorAccessor
from .indicator import Calculator, DEFAULT_CATALOG, Indicator, IndicatorCatalog
from ..shared.cancellation import RunContext, background
from ..shared.errors import (
    DependencyCycleError,
    DuplicateIndicatorError,
    FundStatError,
    IndicatorCalculationError,
    MissingDependencyError,
)
from ..shared.models import FundStructureData

log = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class IndicatorRegistry:
    def __init__(self, catalog: IndicatorCatalog = DEFAULT_CATALOG) -> None:
        self.catalog = catalog
        self._calculators: List[Calculator] = []
        self._owner: Dict[int, Calculator] = {}

    @property
    def calculators(self) -> List[Calculator]:
        return list(self._calculators)

    def register(self, calculator: Calculator) -> None:
        """
        Raises:
            DuplicateIndicatorError: one of the calculator's ids is already owned
        """
        ids = sorted(calculator.ids())
        for indicator_id in ids:
            if indicator_id in self._owner:
                raise DuplicateIndicatorError(indicator_id)
        for indicator_id in ids:
            self._owner[indicator_id] = calculator
        self._calculators.append(calculator)
        log.debug(f"Registered calculator {calculator.describe()} ids={ids}")

    def _evaluation_order(self) -> List[Calculator]:
        """Depth-first topological order; calculators are visited in registration order."""
        color: Dict[int, int] = {id(c): _WHITE for c in self._calculators}
        order: List[Calculator] = []
        stack: List[Calculator] = []

        def visit(calc: Calculator) -> None:
            state = color[id(calc)]
            if state == _BLACK:
                return
            if state == _GREY:
                start = next(i for i, c in enumerate(stack) if c is calc)
                cycle_ids = set()
                for c in stack[start:]:
                    cycle_ids.update(c.ids())
                raise DependencyCycleError(cycle_ids)
            color[id(calc)] = _GREY
            stack.append(calc)
            for dep in sorted(calc.dependencies()):
                owner = self._owner.get(dep)
                # Unowned deps are reported as missing when the calculator runs
                if owner is not None:
                    visit(owner)
            stack.pop()
            color[id(calc)] = _BLACK
            order.append(calc)

        for calc in self._calculators:
            visit(calc)
        return order

    def calculate_all(self, data: FundStructureData, history: Optional[HistoricalIndicatorAccessor] = None,
                      ctx: Optional[RunContext] = None) -> List[Indicator]:
        """
        Evaluate every registered calculator and return the indicators sorted by id.

        Raises:
            DependencyCycleError: the dependency graph has a cycle
            MissingDependencyError: a dependency no calculator produces
            IndicatorCalculationError: a calculator failed unexpectedly
            Cancelled: ctx cancelled
        """
        ctx = ctx or background()
        order = self._evaluation_order()
        computed: Dict[int, Indicator] = {}

        for calc in order:
            ctx.check()
            for dep in sorted(calc.dependencies()):
                if dep not in computed:
                    raise MissingDependencyError(dep, calc.describe())
            deps = {dep: computed[dep] for dep in calc.dependencies()}
            try:
                produced = calc.calculate(data, deps, history, ctx)
            except FundStatError:
                raise
            except Exception as e:
                raise IndicatorCalculationError(f"calculator {calc.describe()} failed: {e}") from e

            for indicator in produced:
                computed[indicator.id] = self.catalog.apply(indicator)

        result = sorted(computed.values(), key=lambda i: i.id)
        log.info(f"Calculated {len(result)} indicators from {len(order)} calculators")
        return result
