#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration System for the fund indicator pipeline
Handles YAML configuration loading, validation, and type conversion.

All settings live under a top-level `fundstat:` mapping. Missing sections fall
back to the defaults below, so an empty mapping is a valid configuration.
"""

import copy
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

from .colored_logging import VALID_LEVELS


class ConfigError(Exception):
    """Configuration-related errors"""
    pass


@dataclass
class HorizonConfig:
    """Ledger (Horizon) API connection"""
    url: str = "https://horizon.stellar.org"
    timeout: float = 30.0
    retry_attempts: int = 3      # retries after the first attempt on HTTP 429 / 5xx
    retry_backoff: float = 1.0   # base delay, doubled per attempt

    def __post_init__(self):
        if not self.url:
            raise ValueError("horizon.url cannot be empty")
        if self.timeout <= 0:
            raise ValueError("horizon.timeout must be positive")
        if self.retry_attempts < 0:
            raise ValueError("horizon.retry_attempts must be >= 0")
        if self.retry_backoff < 0:
            raise ValueError("horizon.retry_backoff must be >= 0")
        self.url = self.url.rstrip("/")


@dataclass
class CoinGeckoConfig:
    """External quote feed"""
    url: str = "https://api.coingecko.com/api/v3"
    timeout: float = 15.0
    retry_attempts: int = 3
    retry_backoff: float = 2.0
    enabled: bool = True

    def __post_init__(self):
        if self.enabled and not self.url:
            raise ValueError("coingecko.url cannot be empty")
        if self.timeout <= 0:
            raise ValueError("coingecko.timeout must be positive")
        if self.retry_attempts < 0:
            raise ValueError("coingecko.retry_attempts must be >= 0")
        self.url = self.url.rstrip("/")


@dataclass
class FundConfig:
    accounts_file: str = "config/fund_accounts.csv"

    def __post_init__(self):
        if not self.accounts_file:
            raise ValueError("fund.accounts_file cannot be empty")


@dataclass
class PipelineConfig:
    """Pacing and deadline of one snapshot build"""
    account_delay_ms: int = 200
    token_delay_ms: int = 100
    run_timeout_s: Optional[float] = None
    interval_minutes: int = 60   # between snapshot builds when serving metrics

    def __post_init__(self):
        if self.interval_minutes < 1:
            raise ValueError("pipeline.interval_minutes must be >= 1")
        if self.account_delay_ms < 0 or self.token_delay_ms < 0:
            raise ValueError("pipeline delays must be >= 0")
        if self.run_timeout_s is not None and self.run_timeout_s <= 0:
            raise ValueError("pipeline.run_timeout_s must be positive when set")


@dataclass
class PriceConfig:
    # When True, holdings other than 0/1 are re-valued with a full-balance path query
    depth_valuation: bool = False
    workers: int = 2

    def __post_init__(self):
        if self.workers < 2:
            raise ValueError("prices.workers must be >= 2 (path and orderbook run concurrently)")


@dataclass
class MetricsConfig:
    """Prometheus exposition of the computed indicators"""
    enabled: bool = False
    listen_address: str = "0.0.0.0"
    listen_port: int = 9109
    path: str = "/metrics"
    prefix: str = "fundstat_"

    def __post_init__(self):
        if not self.prefix:
            raise ValueError("metrics.prefix cannot be empty")
        if not (0 < self.listen_port < 65536):
            raise ValueError("metrics.listen_port must be between 1 and 65535")
        if not self.path.startswith("/"):
            raise ValueError("metrics.path must start with '/'")


@dataclass
class AppConfig:
    """Main configuration"""
    horizon: HorizonConfig = field(default_factory=HorizonConfig)
    coingecko: CoinGeckoConfig = field(default_factory=CoinGeckoConfig)
    fund: FundConfig = field(default_factory=FundConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    prices: PriceConfig = field(default_factory=PriceConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    logging_level: str = "INFO"

    def __post_init__(self):
        if self.logging_level.upper() not in VALID_LEVELS:
            raise ValueError(f"logging_level must be one of: {list(VALID_LEVELS)}")
        self.logging_level = self.logging_level.upper()


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _flag(section: Dict[str, Any], key: str, default: bool, where: str) -> bool:
    """YAML booleans only; a quoted "false" is rejected rather than read as true."""
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{where}.{key} must be true or false, got {value!r}")
    return value


def _load_raw_config(config_path: str) -> Dict[str, Any]:
    """
    Load raw configuration from YAML file

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read {config_path}: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError(f"Configuration must be a YAML mapping, got {type(raw_config)}")

    return raw_config


def _build_config_from_dict(config_dict: Dict[str, Any]) -> AppConfig:
    """
    Build AppConfig from dictionary

    Raises:
        ConfigError: If configuration is invalid
    """
    try:
        root = _section(config_dict, "fundstat")

        h = _section(root, "horizon")
        horizon = HorizonConfig(
            url=str(h.get("url", HorizonConfig.url)),
            timeout=float(h.get("timeout", HorizonConfig.timeout)),
            retry_attempts=int(h.get("retry_attempts", HorizonConfig.retry_attempts)),
            retry_backoff=float(h.get("retry_backoff", HorizonConfig.retry_backoff)),
        )

        cg = _section(root, "coingecko")
        coingecko = CoinGeckoConfig(
            url=str(cg.get("url", CoinGeckoConfig.url)),
            timeout=float(cg.get("timeout", CoinGeckoConfig.timeout)),
            retry_attempts=int(cg.get("retry_attempts", CoinGeckoConfig.retry_attempts)),
            retry_backoff=float(cg.get("retry_backoff", CoinGeckoConfig.retry_backoff)),
            enabled=_flag(cg, "enabled", True, "coingecko"),
        )

        fund = FundConfig(accounts_file=str(_section(root, "fund").get("accounts_file", FundConfig.accounts_file)))

        p = _section(root, "pipeline")
        run_timeout = p.get("run_timeout_s")
        pipeline = PipelineConfig(
            account_delay_ms=int(p.get("account_delay_ms", PipelineConfig.account_delay_ms)),
            token_delay_ms=int(p.get("token_delay_ms", PipelineConfig.token_delay_ms)),
            run_timeout_s=float(run_timeout) if run_timeout is not None else None,
            interval_minutes=int(p.get("interval_minutes", PipelineConfig.interval_minutes)),
        )

        pr = _section(root, "prices")
        prices = PriceConfig(
            depth_valuation=_flag(pr, "depth_valuation", False, "prices"),
            workers=int(pr.get("workers", PriceConfig.workers)),
        )

        m = _section(root, "metrics")
        metrics = MetricsConfig(
            enabled=_flag(m, "enabled", False, "metrics"),
            listen_address=str(m.get("listen_address", MetricsConfig.listen_address)),
            listen_port=int(m.get("listen_port", MetricsConfig.listen_port)),
            path=str(m.get("path", MetricsConfig.path)),
            prefix=str(m.get("prefix", MetricsConfig.prefix)),
        )

        return AppConfig(
            horizon=horizon,
            coingecko=coingecko,
            fund=fund,
            pipeline=pipeline,
            prices=prices,
            metrics=metrics,
            logging_level=str(_section(root, "logging").get("level", "INFO")),
        )

    except (ValueError, TypeError) as e:
        raise ConfigError(f"Configuration validation failed: {e}")


def load_config(config_path: str) -> AppConfig:
    """
    Load and validate configuration from YAML file

    Raises:
        ConfigError: If configuration cannot be loaded or is invalid
    """
    raw_config = _load_raw_config(config_path)
    return _build_config_from_dict(raw_config)


def apply_cli_overrides(config: AppConfig, **overrides) -> AppConfig:
    """
    Apply command-line overrides to a copy of the configuration

    Supported keys: log_level, accounts_file, depth_valuation, run_timeout_s, metrics_enabled.
    None values are ignored.
    """
    try:
        updated = copy.deepcopy(config)

        if overrides.get("log_level"):
            updated.logging_level = str(overrides["log_level"])
        if overrides.get("accounts_file"):
            updated.fund.accounts_file = str(overrides["accounts_file"])
        if overrides.get("depth_valuation") is not None:
            updated.prices.depth_valuation = bool(overrides["depth_valuation"])
        if overrides.get("run_timeout_s") is not None:
            updated.pipeline.run_timeout_s = float(overrides["run_timeout_s"])
        if overrides.get("metrics_enabled") is not None:
            updated.metrics.enabled = bool(overrides["metrics_enabled"])

        updated.__post_init__()
        updated.fund.__post_init__()
        updated.pipeline.__post_init__()

        return updated

    except (ValueError, TypeError) as e:
        raise ConfigError(f"Failed to apply CLI overrides: {e}")
