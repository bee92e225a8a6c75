#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fund indicator runner.
- Loads configuration and the fund account registry
- Builds a fund structure snapshot from the ledger (or reads one from disk)
- Computes the indicator set and prints it, writes it as JSON, or serves it
  on a Prometheus /metrics endpoint (prometheus_client)

Usage examples:
  python -m fundstat.main --help
  python -m fundstat.main --config config/fundstat_config.yaml --once
  python -m fundstat.main --snapshot snapshot.json --history-dir snapshots/ --output indicators.json
  python -m fundstat.main --serve  # rebuild periodically and expose metrics
"""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .core.accounts import AccountRegistryError, FundRegistry, load_accounts
from .core.exporter import IndicatorExporter
from .core.fund_builder import FundStructureBuilder
from .core.live_metrics import LiveMetricsEnricher
from .core.price_cache import PriceCache
from .core.price_service import PriceDiscoveryService
from .core.valuation_resolver import InMemoryQuoteStore, ValuationResolver
from .core.valuation_scanner import ValuationScanner
from .indicators.history import SnapshotHistory, load_history_dir, save_snapshot
from .indicators.indicator import Indicator
from .indicators.standard import standard_registry
from .shared.cancellation import RunContext
from .shared.coingecko_client import CoinGeckoClient
from .shared.colored_logging import DEFAULT_FORMAT, VALID_LEVELS, level_from_name, setup_colored_logging
from .shared.config import AppConfig, ConfigError, apply_cli_overrides, load_config
from .shared.errors import Cancelled, FundStatError, LedgerRequestError
from .shared.horizon_client import HorizonClient
from .shared.models import FundStructureData, utcnow

log = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG = BASE_DIR / 'config' / 'fundstat_config.yaml'


def _resolve_path(path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else BASE_DIR / p


def _load_snapshot_file(path: str) -> FundStructureData:
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)
    # Accept both a bare snapshot and the {"taken_at", "data"} history format
    if isinstance(raw, dict) and 'data' in raw and 'taken_at' in raw:
        raw = raw['data']
    return FundStructureData.from_dict(raw)


def run_once(config: AppConfig, fund_registry: FundRegistry, snapshot_path: Optional[str] = None,
             history_dir: Optional[str] = None, save_history: bool = False,
             ctx: Optional[RunContext] = None) -> Tuple[FundStructureData, List[Indicator]]:
    """Build (or load) one snapshot and compute every indicator from it."""
    ctx = ctx or RunContext(timeout=config.pipeline.run_timeout_s)
    hz = config.horizon
    ledger = HorizonClient(hz.url, hz.timeout, hz.retry_attempts, hz.retry_backoff)
    price_service = PriceDiscoveryService(ledger, cache=PriceCache(), workers=config.prices.workers,
                                          depth_valuation=config.prices.depth_valuation)
    try:
        if snapshot_path:
            data = _load_snapshot_file(snapshot_path)
            log.info(f"Loaded snapshot from {snapshot_path}")
        else:
            quote_store = InMemoryQuoteStore()
            cg = config.coingecko
            if cg.enabled:
                client = CoinGeckoClient(cg.url, cg.timeout, cg.retry_attempts, cg.retry_backoff)
                try:
                    quote_store.refresh(client, ctx)
                except LedgerRequestError as e:
                    log.warning(f"External quotes unavailable, external valuations fall back to market prices: {e}")
            builder = FundStructureBuilder(
                account_source=ledger,
                price_service=price_service,
                scanner=ValuationScanner(ledger, fund_registry),
                resolver=ValuationResolver(quote_store),
                registry=fund_registry,
                account_delay=config.pipeline.account_delay_ms / 1000.0,
                token_delay=config.pipeline.token_delay_ms / 1000.0,
            )
            data = builder.build(ctx)
            LiveMetricsEnricher(ledger, price_service, fund_registry.addresses()).enrich(data, ctx)

        history = load_history_dir(history_dir) if history_dir else SnapshotHistory()
        if save_history and history_dir and not snapshot_path:
            path = save_snapshot(history_dir, utcnow(), data)
            log.info(f"Snapshot saved to {path}")

        registry = standard_registry(price_service, ledger, fund_registry.addresses())
        indicators = registry.calculate_all(data, history, ctx)
        return data, indicators
    finally:
        price_service.close()
        ledger.close()


def _format_table(indicators: List[Indicator]) -> str:
    lines = []
    for ind in indicators:
        lines.append(f"I{ind.id:<3} {ind.name:<40} {ind.to_dict()['value']:>24} {ind.unit}")
    return "\n".join(lines)


class Shutdown:
    """
    SIGINT / SIGTERM handling: stops the serve loop and cancels the run in progress.

    The handler only sets the stop event and cancels the active context.
    """

    def __init__(self) -> None:
        self.stop = threading.Event()
        self._ctx: Optional[RunContext] = None

    def new_context(self, timeout: Optional[float]) -> RunContext:
        ctx = RunContext(timeout=timeout)
        self._ctx = ctx
        if self.stop.is_set():
            ctx.cancel("shutdown requested")
        return ctx

    def request(self, signum: Optional[int] = None, frame=None) -> None:
        if signum is not None:
            log.warning(f"Received {signal.Signals(signum).name}, shutting down")
        self.stop.set()
        ctx = self._ctx
        if ctx is not None:
            ctx.cancel("shutdown requested")

    def install(self) -> Dict[int, object]:
        """Install the handlers; returns the previous ones for restore()."""
        return {s: signal.signal(s, self.request) for s in (signal.SIGINT, signal.SIGTERM)}

    @staticmethod
    def restore(previous: Dict[int, object]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _serve_loop(config: AppConfig, fund_registry: FundRegistry, exporter: IndicatorExporter,
                history_dir: Optional[str], save_history: bool, shutdown: Shutdown) -> None:
    interval = max(1, int(config.pipeline.interval_minutes)) * 60
    while not shutdown.stop.is_set():
        ctx = shutdown.new_context(config.pipeline.run_timeout_s)
        try:
            _, indicators = run_once(config, fund_registry, history_dir=history_dir, save_history=save_history,
                                     ctx=ctx)
            exporter.update(indicators)
            log.info(f"Indicators updated: {len(indicators)} values")
        except Cancelled as e:
            if shutdown.stop.is_set():
                break
            exporter.mark_failed()
            log.error(f"Snapshot build cancelled: {e}")
        except FundStatError as e:
            exporter.mark_failed()
            log.error(f"Snapshot build failed: {e}")
        shutdown.stop.wait(interval)
    log.info("Serve loop stopped")


def main(config_path: Optional[str] = None, once: bool = False, serve: bool = False, log_level: Optional[str] = None,
         accounts_file: Optional[str] = None, snapshot: Optional[str] = None, history_dir: Optional[str] = None,
         save_history: bool = False, output: Optional[str] = None, depth_valuation: Optional[bool] = None,
         run_timeout_s: Optional[float] = None) -> int:
    setup_colored_logging(level=level_from_name(log_level or 'INFO'), fmt=DEFAULT_FORMAT)

    try:
        config = load_config(str(config_path or DEFAULT_CONFIG))
        config = apply_cli_overrides(config, log_level=log_level, accounts_file=accounts_file,
                                     depth_valuation=depth_valuation, run_timeout_s=run_timeout_s,
                                     metrics_enabled=True if serve else None)
    except ConfigError as e:
        print(f"Failed to load configuration: {e}")
        return 2
    setup_colored_logging(level=level_from_name(config.logging_level), fmt=DEFAULT_FORMAT)

    try:
        fund_registry = load_accounts(_resolve_path(config.fund.accounts_file))
    except AccountRegistryError as e:
        print(f"Failed to load account registry: {e}")
        return 1
    log.info(f"Loaded {len(fund_registry)} fund accounts")

    shutdown = Shutdown()
    previous_handlers = shutdown.install()
    try:
        if config.metrics.enabled and not once and not snapshot:
            exporter = IndicatorExporter(config.metrics)
            exporter.start_http()
            try:
                _serve_loop(config, fund_registry, exporter, history_dir, save_history, shutdown)
            finally:
                exporter.stop_http()
            return 0

        try:
            _, indicators = run_once(config, fund_registry, snapshot_path=snapshot, history_dir=history_dir,
                                     save_history=save_history,
                                     ctx=shutdown.new_context(config.pipeline.run_timeout_s))
        except FundStatError as e:
            log.error(f"Indicator run failed: {e}")
            return 1
    finally:
        Shutdown.restore(previous_handlers)

    if output:
        with open(output, 'w', encoding='utf-8') as f:
            json.dump({"indicators": [i.to_dict() for i in indicators]}, f, indent=2)
        log.info(f"Wrote {len(indicators)} indicators to {output}")
    else:
        print(_format_table(indicators))
    return 0


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Fund indicator calculator')
    parser.add_argument('--config', type=str, default=None, help='Path to fundstat_config.yaml')
    parser.add_argument('--once', action='store_true', help='Run one snapshot build and exit even if metrics are enabled')
    parser.add_argument('--serve', action='store_true', help='Enable the metrics endpoint and rebuild periodically')
    parser.add_argument('--log-level', type=str, default=None, choices=list(VALID_LEVELS), help='Logging level')
    parser.add_argument('--accounts-file', type=str, default=None, help='Override the fund account registry CSV')
    parser.add_argument('--snapshot', type=str, default=None, help='Compute indicators from a saved snapshot JSON instead of the ledger')
    parser.add_argument('--history-dir', type=str, default=None, help='Directory of historical snapshot JSON files')
    parser.add_argument('--save-snapshot', action='store_true', help='Save the freshly built snapshot into --history-dir')
    parser.add_argument('--output', type=str, default=None, help='Write indicators as JSON to this file')
    parser.add_argument('--depth-valuation', action='store_true', default=None, help='Value holdings by selling the full balance along paths')
    parser.add_argument('--timeout', type=float, default=None, help='Deadline in seconds for one run')
    return parser.parse_args(argv)


def cli(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    sys.exit(main(config_path=args.config, once=args.once, serve=args.serve,
                  log_level=args.log_level, accounts_file=args.accounts_file, snapshot=args.snapshot,
                  history_dir=args.history_dir, save_history=args.save_snapshot, output=args.output,
                  depth_valuation=args.depth_valuation, run_timeout_s=args.timeout))


if __name__ == '__main__':
    cli()
