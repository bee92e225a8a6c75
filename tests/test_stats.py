#!/usr/bin/env python3
"""
Unit tests for the sample statistics helpers
"""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fundstat.indicators.stats import (
    covariance,
    downside_std_dev,
    mean,
    median,
    normal_quantile,
    simple_returns,
    std_dev,
    variance,
)


def decs(*values):
    return [Decimal(str(v)) for v in values]


class TestMoments:
    """mean, variance, std_dev and covariance"""

    def test_mean(self):
        assert mean(decs(1, 2, 3, 4)) == Decimal("2.5")

    def test_sample_variance(self):
        assert float(variance(decs(2, 4, 4, 4, 5, 5, 7, 9))) == pytest.approx(32 / 7)

    def test_std_dev(self):
        assert float(std_dev(decs(1, 3))) == pytest.approx(2 ** 0.5)

    def test_covariance_uses_common_prefix(self):
        assert float(covariance(decs(1, 2, 3), decs(2, 4, 6, 100))) == pytest.approx(2.0)

    @pytest.mark.parametrize("fn", [mean, variance, std_dev, median])
    def test_degenerate_inputs_are_zero(self, fn):
        assert fn([]) == 0

    def test_single_sample_spread_is_zero(self):
        assert variance(decs(5)) == 0
        assert std_dev(decs(5)) == 0
        assert covariance(decs(5), decs(6)) == 0


class TestDownside:
    """Root mean square shortfall below a threshold"""

    def test_only_negative_returns_count(self):
        assert float(downside_std_dev(decs("0.1", "-0.03", "-0.04", "0.2"))) == pytest.approx(((0.0009 + 0.0016) / 2) ** 0.5)

    def test_no_downside(self):
        assert downside_std_dev(decs("0.1", "0.2")) == 0


class TestMedian:
    """Median stays in Decimal"""

    def test_odd(self):
        assert median(decs(3, 1, 2)) == Decimal(2)

    def test_even(self):
        assert median(decs(4, 1, 3, 2)) == Decimal("2.5")


class TestNormalQuantile:
    """Inverse normal CDF"""

    def test_five_percent(self):
        assert normal_quantile(0.05) == pytest.approx(-1.6448536, abs=1e-6)

    def test_symmetry(self):
        assert normal_quantile(0.975) == pytest.approx(-normal_quantile(0.025))

    def test_median_is_zero(self):
        assert normal_quantile(0.5) == pytest.approx(0.0)

    @pytest.mark.parametrize("p", [0, 1, -0.5, 2])
    def test_out_of_range(self, p):
        assert normal_quantile(p) == 0.0


class TestSimpleReturns:
    def test_returns(self):
        assert simple_returns(decs(100, 110, 99)) == [Decimal("0.1"), Decimal("-0.1")]

    def test_zero_price_skipped(self):
        assert simple_returns(decs(0, 10, 20)) == [Decimal(1)]


if __name__ == "__main__":
    pytest.main([__file__])
