#!/usr/bin/env python3
"""
Unit tests for path-based price discovery
"""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeLedger, path
from fundstat.core.path_finder import PathPriceFinder, build_hops, path_record_to_price
from fundstat.shared.errors import LedgerRequestError, NoPriceError
from fundstat.shared.models import EURMTL, MTL, PathProvenance, XLM, utcnow


class TestPathRecordConversion:
    """path_record_to_price and hop construction"""

    def test_price_is_destination_over_source(self):
        price = path_record_to_price(path("2", "1"), MTL, EURMTL, "2", utcnow())
        assert price.price == Decimal("0.5")
        assert price.destination_amount == Decimal("1")
        assert price.source_amount_used == "2"
        assert isinstance(price.provenance, PathProvenance)

    def test_zero_source_amount_is_unusable(self):
        assert path_record_to_price(path("0", "1"), MTL, EURMTL, "1", utcnow()) is None

    def test_garbage_amount_is_unusable(self):
        assert path_record_to_price(path("abc", "1"), MTL, EURMTL, "1", utcnow()) is None

    def test_hops_render_native_as_xlm(self):
        record = path("1", "1", hops=("", "EURMTL"))
        hops = build_hops(record)
        assert [(h.from_code, h.to_code) for h in hops] == [("XLM", "XLM"), ("XLM", "EURMTL")]


class TestPathPriceFinder:
    """Strict-send first, strict-receive fallback"""

    def test_strict_send_used_when_available(self):
        ledger = FakeLedger()
        ledger.send_paths[("MTL", "EURMTL")] = [path("1", "0.5")]
        price = PathPriceFinder(ledger).find(MTL, EURMTL, "1")
        assert price.price == Decimal("0.5")
        assert not any(c[0] == "receive" for c in ledger.calls)

    def test_falls_back_to_strict_receive_on_empty(self):
        ledger = FakeLedger()
        ledger.receive_paths[("MTL", "EURMTL")] = [path("2", "1")]
        price = PathPriceFinder(ledger).find(MTL, EURMTL, "1")
        assert price.price == Decimal("0.5")

    def test_falls_back_to_strict_receive_on_transport_error(self):
        ledger = FakeLedger()
        ledger.send_paths[("MTL", "XLM")] = LedgerRequestError("boom", 500)
        ledger.receive_paths[("MTL", "XLM")] = [path("1", "4")]
        assert PathPriceFinder(ledger).find(MTL, XLM, "1").price == Decimal("4")

    def test_no_paths_raises(self):
        with pytest.raises(NoPriceError):
            PathPriceFinder(FakeLedger()).find(MTL, EURMTL, "1")

    def test_receive_transport_error_propagates(self):
        ledger = FakeLedger()
        ledger.receive_paths[("MTL", "EURMTL")] = LedgerRequestError("down", 503)
        with pytest.raises(LedgerRequestError):
            PathPriceFinder(ledger).find(MTL, EURMTL, "1")


if __name__ == "__main__":
    pytest.main([__file__])
