"""
Tests for engine configuration loading.
"""

from pathlib import Path

import pytest

from valuation_engine.config import (
    CONFIG_PATH_ENV,
    CacheTTLConfig,
    EngineConfig,
    StaticDefaults,
    load_config,
)
from valuation_engine.factory import build_aggregator, build_registry
from valuation_engine.models import IndicatorKey
from valuation_sources.config import SourceConfig
from valuation_sources.exceptions import ConfigurationError


YAML_CONFIG = """
sources:
  timeout_seconds: 5
  credit_spread_series: BAMLC0A4CBBB
  not_a_setting: true
cache_ttl:
  cape: 3600
  credit_spread: 600
static_defaults:
  cape: 30.0
buffett_all_time_high: 250
"""


class TestDefaults:

    def test_default_ttls(self):
        ttl = CacheTTLConfig().as_mapping()
        assert ttl[IndicatorKey.CREDIT_SPREAD] == 3600
        assert ttl[IndicatorKey.CAPE] == 86400
        assert set(ttl) == set(IndicatorKey)

    def test_static_defaults(self):
        values = StaticDefaults().as_mapping()
        assert values[IndicatorKey.CAPE] == 38.0
        assert values[IndicatorKey.BUFFETT] == 200.0
        assert values[IndicatorKey.CREDIT_SPREAD] == 1.8

    def test_invalid_ttl_rejected(self):
        with pytest.raises(ValueError):
            CacheTTLConfig(cape=0)

    def test_invalid_source_settings_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SourceConfig(timeout_seconds=-1)
        assert exc_info.value.config_key == "timeout_seconds"
        with pytest.raises(ValueError):
            SourceConfig(max_retries=0)

    def test_bad_source_settings_in_yaml_fall_back_to_env(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "tracker.yaml"
        path.write_text("sources:\n  timeout_seconds: 0\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        assert load_config().sources.timeout_seconds == SourceConfig().timeout_seconds


class TestLoaders:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_CAPE", "120")
        monkeypatch.setenv("SOURCE_TIMEOUT_SECONDS", "3.5")
        monkeypatch.setenv("GDP_SERIES", "GDPC1")

        config = EngineConfig.from_env()

        assert config.cache_ttl.cape == 120.0
        assert config.cache_ttl.buffett == 86400
        assert config.sources.timeout_seconds == 3.5
        assert config.sources.gdp_series == "GDPC1"

    def test_from_env_rejects_bad_ttl(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_SP500", "-5")
        with pytest.raises(ValueError):
            EngineConfig.from_env()

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "tracker.yaml"
        path.write_text(YAML_CONFIG)

        config = EngineConfig.from_yaml(path)

        assert config.sources.timeout_seconds == 5
        assert config.sources.credit_spread_series == "BAMLC0A4CBBB"
        assert config.cache_ttl.cape == 3600.0
        assert config.cache_ttl.credit_spread == 600.0
        assert config.cache_ttl.buffett == 86400
        assert config.static_defaults.cape == 30.0
        assert config.static_defaults.buffett == 200.0
        assert config.buffett_all_time_high == 250.0

    def test_load_config_uses_env_path(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "tracker.yaml"
        path.write_text(YAML_CONFIG)
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        assert load_config().cache_ttl.credit_spread == 600.0

    def test_load_config_missing_file_falls_back_to_env(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "missing.yaml"))
        monkeypatch.setenv("CACHE_TTL_SP500", "90")

        assert load_config().cache_ttl.sp500 == 90.0

    def test_round_trip_dict(self):
        data = EngineConfig().to_dict()
        assert data["cache_ttl"]["cape"] == 86400
        assert data["sources"]["credit_spread_series"] == "BAA10Y"


class TestWiring:

    def test_registry_order(self):
        registry = build_registry(SourceConfig())

        assert [s.name for s in registry.sources_for("cape")] == ["multpl_cape", "shiller_workbook"]
        assert [s.name for s in registry.sources_for("sp500")] == ["yahoo_quote", "fred_sp500"]
        assert [s.name for s in registry.sources_for("creditSpread")] == ["fred_baa10y"]
        assert [s.name for s in registry.sources_for("buffett")] == ["buffett_indicator"]

    def test_custom_series(self):
        registry = build_registry(SourceConfig(credit_spread_series="BAMLC0A4CBBB"))
        assert registry.sources_for("creditSpread")[0].name == "fred_bamlc0a4cbbb"

    def test_build_aggregator(self):
        config = EngineConfig(cache_ttl=CacheTTLConfig(sp500=60))

        aggregator = build_aggregator(config)

        assert aggregator.cache.ttl(IndicatorKey.SP500) == 60
        assert set(aggregator.registry.indicators()) == {"cape", "buffett", "creditSpread", "sp500"}
