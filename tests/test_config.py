#!/usr/bin/env python3
"""
Tests for YAML configuration loading, defaults, validation and CLI overrides
"""
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fundstat.shared.config import ConfigError, apply_cli_overrides, load_config


def write_config(tmp_path: Path, text: str) -> str:
    path = tmp_path / "fundstat_config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestLoadConfig:
    """load_config() over real YAML files"""

    def test_shipped_config_loads(self):
        config = load_config(str(Path(__file__).parent.parent / "config" / "fundstat_config.yaml"))
        assert config.horizon.url == "https://horizon.stellar.org"
        assert config.fund.accounts_file == "config/fund_accounts.csv"
        assert config.metrics.enabled is False

    def test_empty_file_uses_defaults(self, tmp_path):
        config = load_config(write_config(tmp_path, ""))
        assert config.horizon.timeout == 30.0
        assert config.pipeline.account_delay_ms == 200
        assert config.pipeline.token_delay_ms == 100
        assert config.pipeline.run_timeout_s is None
        assert config.prices.depth_valuation is False
        assert config.metrics.listen_port == 9109
        assert config.logging_level == "INFO"

    def test_values_are_read(self, tmp_path):
        config = load_config(write_config(tmp_path, """
fundstat:
  horizon:
    url: "https://horizon.example.org/"
    retry_attempts: 5
  pipeline:
    run_timeout_s: 600
    interval_minutes: 15
  prices:
    depth_valuation: true
  metrics:
    enabled: true
    listen_port: 9200
  logging:
    level: debug
"""))
        assert config.horizon.url == "https://horizon.example.org"
        assert config.horizon.retry_attempts == 5
        assert config.pipeline.run_timeout_s == 600.0
        assert config.pipeline.interval_minutes == 15
        assert config.prices.depth_valuation is True
        assert config.metrics.enabled is True
        assert config.metrics.listen_port == 9200
        assert config.logging_level == "DEBUG"

    def test_quoted_false_is_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="metrics.enabled must be true or false"):
            load_config(write_config(tmp_path, "fundstat:\n  metrics:\n    enabled: \"false\"\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(write_config(tmp_path, "fundstat: [unclosed"))

    def test_non_mapping_root(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(write_config(tmp_path, "- just\n- a list\n"))

    def test_non_mapping_section(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(write_config(tmp_path, "fundstat:\n  horizon: 12\n"))

    @pytest.mark.parametrize("text", [
        "fundstat:\n  horizon:\n    timeout: 0\n",
        "fundstat:\n  pipeline:\n    interval_minutes: 0\n",
        "fundstat:\n  pipeline:\n    account_delay_ms: -1\n",
        "fundstat:\n  prices:\n    workers: 1\n",
        "fundstat:\n  metrics:\n    listen_port: 70000\n",
        "fundstat:\n  metrics:\n    path: metrics\n",
        "fundstat:\n  logging:\n    level: LOUD\n",
        "fundstat:\n  horizon:\n    timeout: fast\n",
        "fundstat:\n  metrics:\n    enabled: \"false\"\n",
        "fundstat:\n  prices:\n    depth_valuation: \"no\"\n",
        "fundstat:\n  coingecko:\n    enabled: 1\n",
    ])
    def test_validation_errors(self, tmp_path, text):
        with pytest.raises(ConfigError, match="validation failed"):
            load_config(write_config(tmp_path, text))


class TestCliOverrides:
    """apply_cli_overrides() returns a validated copy"""

    def test_overrides_applied_to_copy(self, tmp_path):
        base = load_config(write_config(tmp_path, ""))
        updated = apply_cli_overrides(base, log_level="warning", accounts_file="other.csv",
                                      depth_valuation=True, run_timeout_s=30, metrics_enabled=True)
        assert updated.logging_level == "WARNING"
        assert updated.fund.accounts_file == "other.csv"
        assert updated.prices.depth_valuation is True
        assert updated.pipeline.run_timeout_s == 30.0
        assert updated.metrics.enabled is True
        assert base.logging_level == "INFO"
        assert base.prices.depth_valuation is False
        assert base.metrics.enabled is False

    def test_none_values_ignored(self, tmp_path):
        base = load_config(write_config(tmp_path, ""))
        updated = apply_cli_overrides(base, log_level=None, depth_valuation=None)
        assert updated == base

    def test_invalid_override(self, tmp_path):
        base = load_config(write_config(tmp_path, ""))
        with pytest.raises(ConfigError):
            apply_cli_overrides(base, run_timeout_s=-5)


if __name__ == "__main__":
    pytest.main([__file__])
