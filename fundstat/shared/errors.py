#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exception hierarchy shared by price discovery, valuation scanning and the
indicator engine.

Abstentions (one source, one account, one optional input) are logged and never
raised. The classes below cover the remaining cases:
- resource exhausted: NoPriceError, QuoteUnavailableError, ValuationScanError
- integrity violations: DuplicateIndicatorError, DependencyCycleError, MissingDependencyError
- malformed input: ValuationParseError
- transport: LedgerRequestError
"""
from __future__ import annotations

from typing import Iterable, Optional


class FundStatError(Exception):
    """Base class for all fundstat errors"""
    pass


class Cancelled(FundStatError):
    """The caller cancelled the run or its deadline elapsed"""
    pass


class LedgerRequestError(FundStatError):
    """HTTP request to an upstream API failed after retries"""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NoPriceError(FundStatError):
    """Every source for a required price abstained"""
    pass


class QuoteUnavailableError(FundStatError):
    """No external quote is cached for a symbol"""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"no external quote available for symbol {symbol}")
        self.symbol = symbol


class ValuationParseError(FundStatError, ValueError):
    """A manual valuation string could not be parsed"""
    pass


class ValuationScanError(FundStatError):
    """Every account in the registry failed to scan"""
    pass


class DuplicateIndicatorError(FundStatError):
    """Two calculators claim the same indicator id"""

    def __init__(self, indicator_id: int) -> None:
        super().__init__(f"indicator {indicator_id} is already registered")
        self.indicator_id = indicator_id


class DependencyCycleError(FundStatError):
    def __init__(self, indicator_ids: Iterable[int]) -> None:
        self.indicator_ids = sorted(set(indicator_ids))
        super().__init__(f"dependency cycle detected involving indicators {self.indicator_ids}")


class MissingDependencyError(FundStatError):
    def __init__(self, indicator_id: int, calculator: str) -> None:
        super().__init__(f"dependency {indicator_id} not computed before {calculator}")
        self.indicator_id = indicator_id
        self.calculator = calculator


class IndicatorCalculationError(FundStatError):
    """A calculator raised unexpectedly"""
    pass
