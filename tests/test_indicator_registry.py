#!/usr/bin/env python3
"""
Unit tests for IndicatorRegistry

Tests cover:
- dependency ordering independent of registration order
- duplicate ids, cycles and missing dependencies
- catalog names overriding calculator fallbacks
"""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fundstat.indicators.indicator import Calculator, IndicatorCatalog, make_indicator
from fundstat.indicators.layer2 import Layer2Calculator
from fundstat.indicators.registry import IndicatorRegistry
from fundstat.shared.cancellation import RunContext
from fundstat.shared.errors import (
    Cancelled,
    DependencyCycleError,
    DuplicateIndicatorError,
    IndicatorCalculationError,
    MissingDependencyError,
    NoPriceError,
)
from fundstat.shared.models import FundStructureData

CATALOG = IndicatorCatalog({
    1: ("Base", "EURMTL"),
    2: ("Doubled", "EURMTL"),
    3: ("Sum", "EURMTL"),
})


class FnCalculator(Calculator):
    """Test calculator built from a function of the dependency values."""

    def __init__(self, name, produces, deps=(), fn=None):
        self.name = name
        self._ids = frozenset(produces)
        self._deps = frozenset(deps)
        self._fn = fn or (lambda d: {i: Decimal(0) for i in produces})
        self.seen_history = "unset"

    def ids(self):
        return self._ids

    def dependencies(self):
        return self._deps

    def calculate(self, data, deps, history=None, ctx=None):
        self.seen_history = history
        values = self._fn({k: v.value for k, v in deps.items()})
        return [make_indicator(i, v, name=f"fallback {i}", unit="?") for i, v in values.items()]


def base():
    return FnCalculator("base", [1], fn=lambda d: {1: Decimal(5)})


def doubled():
    return FnCalculator("doubled", [2], deps=[1], fn=lambda d: {2: d[1] * 2})


def total():
    return FnCalculator("total", [3], deps=[1, 2], fn=lambda d: {3: d[1] + d[2]})


class TestRegistration:
    """register()"""

    def test_duplicate_id_rejected(self):
        reg = IndicatorRegistry(CATALOG)
        reg.register(FnCalculator("a", [1, 2]))
        with pytest.raises(DuplicateIndicatorError) as exc_info:
            reg.register(FnCalculator("b", [2, 3]))
        assert exc_info.value.indicator_id == 2

    def test_rejected_calculator_claims_nothing(self):
        reg = IndicatorRegistry(CATALOG)
        reg.register(FnCalculator("a", [2]))
        with pytest.raises(DuplicateIndicatorError):
            reg.register(FnCalculator("b", [1, 2]))
        # id 1 is still free
        reg.register(FnCalculator("c", [1]))
        assert [c.name for c in reg.calculators] == ["a", "c"]


class TestCalculateAll:
    """calculate_all() ordering and failure modes"""

    def test_registration_order_does_not_matter(self):
        forward = IndicatorRegistry(CATALOG)
        for c in (base(), doubled(), total()):
            forward.register(c)
        backward = IndicatorRegistry(CATALOG)
        for c in (total(), doubled(), base()):
            backward.register(c)

        a = forward.calculate_all(FundStructureData())
        b = backward.calculate_all(FundStructureData())
        assert a == b
        assert [(i.id, i.value) for i in a] == [(1, Decimal(5)), (2, Decimal(10)), (3, Decimal(15))]

    def test_catalog_name_and_unit_win(self):
        reg = IndicatorRegistry(CATALOG)
        reg.register(base())
        reg.register(FnCalculator("extra", [99], fn=lambda d: {99: Decimal(1)}))
        by_id = {i.id: i for i in reg.calculate_all(FundStructureData())}
        assert (by_id[1].name, by_id[1].unit) == ("Base", "EURMTL")
        assert (by_id[99].name, by_id[99].unit) == ("fallback 99", "?")

    def test_cycle_names_participating_ids(self):
        reg = IndicatorRegistry(CATALOG)
        reg.register(base())
        reg.register(FnCalculator("x", [10], deps=[11]))
        reg.register(FnCalculator("y", [11], deps=[10, 1]))
        with pytest.raises(DependencyCycleError) as exc_info:
            reg.calculate_all(FundStructureData())
        assert exc_info.value.indicator_ids == [10, 11]

    def test_missing_dependency(self):
        reg = IndicatorRegistry(CATALOG)
        reg.register(doubled())
        with pytest.raises(MissingDependencyError) as exc_info:
            reg.calculate_all(FundStructureData())
        assert exc_info.value.indicator_id == 1
        assert exc_info.value.calculator == "doubled"

    def test_unexpected_error_is_wrapped(self):
        def boom(d):
            raise ZeroDivisionError("boom")
        reg = IndicatorRegistry(CATALOG)
        reg.register(FnCalculator("bad", [1], fn=boom))
        with pytest.raises(IndicatorCalculationError) as exc_info:
            reg.calculate_all(FundStructureData())
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_domain_error_propagates_unwrapped(self):
        def no_price(d):
            raise NoPriceError("no route")
        reg = IndicatorRegistry(CATALOG)
        reg.register(FnCalculator("bad", [1], fn=no_price))
        with pytest.raises(NoPriceError):
            reg.calculate_all(FundStructureData())

    def test_history_is_passed_through(self):
        calc = base()
        reg = IndicatorRegistry(CATALOG)
        reg.register(calc)
        sentinel = object()
        reg.calculate_all(FundStructureData(), history=sentinel)
        assert calc.seen_history is sentinel

    def test_cancelled_context(self):
        reg = IndicatorRegistry(CATALOG)
        reg.register(base())
        ctx = RunContext()
        ctx.cancel()
        with pytest.raises(Cancelled):
            reg.calculate_all(FundStructureData(), ctx=ctx)

    def test_empty_registry(self):
        assert IndicatorRegistry(CATALOG).calculate_all(FundStructureData()) == []


class TestLayeredScenario:
    """Layer2 ratios computed through the registry from upstream share and asset figures"""

    def test_market_cap_and_book_value(self):
        upstream = FnCalculator("upstream", [3, 5, 10, 61], fn=lambda d: {
            3: Decimal("100000"),   # assets value
            5: Decimal("10000"),    # total shares
            10: Decimal("8.5"),     # share price
            61: Decimal("60000"),
        })
        registry = IndicatorRegistry()
        registry.register(Layer2Calculator())
        registry.register(upstream)
        values = {i.id: i.value for i in registry.calculate_all(FundStructureData())}
        assert values[1] == Decimal("85000")
        assert values[8] == Decimal("10")
        assert values[30] == Decimal("0.85")


if __name__ == "__main__":
    pytest.main([__file__])
