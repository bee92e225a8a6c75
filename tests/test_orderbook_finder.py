#!/usr/bin/env python3
"""
Unit tests for order book / AMM price discovery
"""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeLedger, book, pool
from fundstat.core.orderbook_finder import OrderbookAmmFinder, amm_spot_price, select_best_source
from fundstat.shared.errors import LedgerRequestError, NoPriceError
from fundstat.shared.models import EURMTL, MTL, OrderbookProvenance, PriceQuote


class TestAmmSpotPrice:
    """Spot price from pool reserves"""

    def test_other_over_source(self):
        p = pool("p1", MTL.canonical, "100", EURMTL.canonical, "50")
        assert amm_spot_price(p, MTL) == Decimal("0.5")
        assert amm_spot_price(p, EURMTL) == Decimal("2")

    def test_empty_reserve_is_undefined(self):
        p = pool("p1", MTL.canonical, "0", EURMTL.canonical, "50")
        assert amm_spot_price(p, MTL) is None


class TestSelectBestSource:
    """Lower ask wins between the two venues"""

    def test_lower_orderbook_ask_wins(self):
        assert select_best_source(PriceQuote(ask=Decimal("1.0"), bid=Decimal("0.9")),
                                  PriceQuote(ask=Decimal("1.1"), bid=Decimal("1.1"))) == "orderbook"

    def test_lower_amm_ask_wins(self):
        assert select_best_source(PriceQuote(ask=Decimal("1.2")), PriceQuote(ask=Decimal("1.1"))) == "amm"

    def test_tie_goes_to_orderbook(self):
        assert select_best_source(PriceQuote(ask=Decimal("1")), PriceQuote(ask=Decimal("1"))) == "orderbook"

    def test_missing_orderbook_ask_compares_as_zero(self):
        assert select_best_source(PriceQuote(bid=Decimal("0.9")), PriceQuote(ask=Decimal("1.1"))) == "orderbook"

    def test_single_venue(self):
        assert select_best_source(PriceQuote(), PriceQuote(ask=Decimal("1"))) == "amm"
        assert select_best_source(PriceQuote(bid=Decimal("1")), PriceQuote()) == "orderbook"
        assert select_best_source(PriceQuote(), PriceQuote()) == "none"


class TestOrderbookAmmFinder:
    """find() and best_bid()"""

    def test_reports_bid_of_chosen_venue(self):
        ledger = FakeLedger()
        ledger.orderbooks[("MTL", "EURMTL")] = book(bid="0.45", ask="0.55")
        price = OrderbookAmmFinder(ledger).find(MTL, EURMTL)
        assert price.price == Decimal("0.45")
        assert isinstance(price.provenance, OrderbookProvenance)
        assert price.provenance.price_type == "bid"
        assert price.source_amount_used == "1"

    def test_falls_back_to_ask_without_bids(self):
        ledger = FakeLedger()
        ledger.orderbooks[("MTL", "EURMTL")] = book(ask="0.55")
        price = OrderbookAmmFinder(ledger).find(MTL, EURMTL)
        assert price.price == Decimal("0.55")
        assert price.provenance.price_type == "ask"

    def test_amm_only(self):
        ledger = FakeLedger()
        ledger.pools[("MTL", "EURMTL")] = [pool("p1", MTL.canonical, "100", EURMTL.canonical, "40")]
        price = OrderbookAmmFinder(ledger).find(MTL, EURMTL)
        assert price.price == Decimal("0.4")
        assert price.provenance.data.amm_pool_id == "p1"
        assert price.provenance.data.best_source == "amm"

    def test_one_failing_venue_abstains(self):
        ledger = FakeLedger()
        ledger.orderbooks[("MTL", "EURMTL")] = LedgerRequestError("down", 503)
        ledger.pools[("MTL", "EURMTL")] = [pool("p1", MTL.canonical, "100", EURMTL.canonical, "40")]
        assert OrderbookAmmFinder(ledger).find(MTL, EURMTL).price == Decimal("0.4")

    def test_both_venues_failing_raises_transport_error(self):
        ledger = FakeLedger()
        ledger.orderbooks[("MTL", "EURMTL")] = LedgerRequestError("down", 503)
        ledger.pools[("MTL", "EURMTL")] = LedgerRequestError("down", 503)
        with pytest.raises(LedgerRequestError):
            OrderbookAmmFinder(ledger).find(MTL, EURMTL)

    def test_no_liquidity_raises_no_price(self):
        with pytest.raises(NoPriceError):
            OrderbookAmmFinder(FakeLedger()).find(MTL, EURMTL)

    def test_best_bid(self):
        ledger = FakeLedger()
        ledger.orderbooks[("MTL", "EURMTL")] = book(bid="0.85", ask="0.9")
        assert OrderbookAmmFinder(ledger).best_bid(MTL, EURMTL) == Decimal("0.85")

    def test_best_bid_without_bids_raises(self):
        ledger = FakeLedger()
        ledger.orderbooks[("MTL", "EURMTL")] = book(ask="0.9")
        with pytest.raises(NoPriceError):
            OrderbookAmmFinder(ledger).best_bid(MTL, EURMTL)


if __name__ == "__main__":
    pytest.main([__file__])
