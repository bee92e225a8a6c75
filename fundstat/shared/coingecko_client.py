#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CoinGecko client for EUR quotes of the external valuation symbols.

Sats are quoted per satoshi (BTC / 1e8) and AU per gram (troy ounce / 31.1035).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional

import requests

from .cancellation import RunContext, background
from .decimal_utils import to_decimal
from .errors import LedgerRequestError
from .logging_setup import get_logger

logger = get_logger(__name__)

# Valuation symbol -> CoinGecko coin id
SYMBOL_MAPPING: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "XLM": "stellar",
    "Sats": "bitcoin",
    "USD": "tether",
    "AU": "gold",
}

SATS_PER_BTC = Decimal(100_000_000)
GRAMS_PER_TROY_OUNCE = Decimal("31.1035")


class CoinGeckoClient:
    def __init__(self, base_url: str, timeout: float = 15.0, retry_attempts: int = 3, retry_backoff: float = 2.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = max(0, int(retry_attempts))
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json', 'User-Agent': 'fundstat/1.0'})

    def _get(self, path: str, params: Dict[str, str], ctx: RunContext) -> Dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        last_error: Optional[str] = None
        for attempt in range(self.retry_attempts + 1):
            ctx.check()
            try:
                response = self.session.get(url, params=params, timeout=ctx.clamp_timeout(self.timeout))
                if response.status_code == 200:
                    try:
                        return response.json(parse_float=Decimal)
                    except ValueError as e:
                        raise LedgerRequestError(f"invalid JSON from CoinGecko: {e}", 200)
                if response.status_code != 429:
                    raise LedgerRequestError(f"CoinGecko HTTP {response.status_code}: {response.text[:200]}", response.status_code)
                last_error = f"CoinGecko rate limited (attempt {attempt + 1}/{self.retry_attempts + 1})"
                logger.warning(last_error)
            except requests.exceptions.Timeout:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"CoinGecko attempt {attempt + 1} timed out")
            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {e}"
                logger.warning(f"CoinGecko attempt {attempt + 1} connection failed")
            except requests.exceptions.RequestException as e:
                last_error = f"Request failed: {e}"
                logger.warning(f"CoinGecko attempt {attempt + 1} failed: {e}")
            if attempt < self.retry_attempts:
                ctx.wait(self.retry_backoff * (2 ** attempt))
        raise LedgerRequestError(last_error or "CoinGecko request failed")

    def fetch_prices(self, ctx: Optional[RunContext] = None) -> Dict[str, Decimal]:
        """EUR price per valuation symbol. Symbols missing from the response are skipped."""
        ctx = ctx or background()
        ids = ",".join(sorted(set(SYMBOL_MAPPING.values())))
        raw = self._get("/simple/price", {"ids": ids, "vs_currencies": "eur"}, ctx)

        result: Dict[str, Decimal] = {}
        for symbol, coin_id in SYMBOL_MAPPING.items():
            eur = to_decimal((raw.get(coin_id) or {}).get("eur"))
            if eur is None:
                logger.warning(f"CoinGecko response missing price symbol={symbol} coin_id={coin_id}")
                continue
            if symbol == "Sats":
                eur = eur / SATS_PER_BTC
            elif symbol == "AU":
                eur = eur / GRAMS_PER_TROY_OUNCE
            result[symbol] = eur
        return result
