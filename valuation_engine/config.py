"""
Valuation Engine - Configuration.

Combines cache TTLs, source settings and static fallback values.

Loading order (see load_config):
1. YAML file named by CYCLE_TRACKER_CONFIG, when set
2. Environment variables
3. Built-in defaults
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from valuation_engine.constants import (
    BUFFETT_ALL_TIME_HIGH_THRESHOLD,
    DAY,
    DEFAULT_STATIC_VALUES,
    HOUR,
)
from valuation_engine.models import IndicatorKey
from valuation_sources.config import SourceConfig


logger = logging.getLogger(__name__)


CONFIG_PATH_ENV = "CYCLE_TRACKER_CONFIG"


@dataclass
class CacheTTLConfig:
    """Freshness window per cache key, in seconds."""
    credit_spread: float = HOUR
    sp500: float = HOUR
    composite_snapshot: float = HOUR
    cape: float = DAY
    buffett: float = DAY

    def __post_init__(self) -> None:
        for name, ttl in self.to_dict().items():
            if ttl <= 0:
                raise ValueError(f"TTL for {name} must be positive, got {ttl}")

    def as_mapping(self) -> Dict[IndicatorKey, float]:
        """TTLs keyed by IndicatorKey, as IndicatorCache expects."""
        return {
            IndicatorKey.CREDIT_SPREAD: self.credit_spread,
            IndicatorKey.SP500: self.sp500,
            IndicatorKey.COMPOSITE_SNAPSHOT: self.composite_snapshot,
            IndicatorKey.CAPE: self.cape,
            IndicatorKey.BUFFETT: self.buffett,
        }

    def to_dict(self) -> Dict[str, float]:
        return {
            "credit_spread": self.credit_spread,
            "sp500": self.sp500,
            "composite_snapshot": self.composite_snapshot,
            "cape": self.cape,
            "buffett": self.buffett,
        }


@dataclass
class StaticDefaults:
    """Values served when no live or cached value exists."""
    cape: float = DEFAULT_STATIC_VALUES[IndicatorKey.CAPE]
    buffett: float = DEFAULT_STATIC_VALUES[IndicatorKey.BUFFETT]
    credit_spread: float = DEFAULT_STATIC_VALUES[IndicatorKey.CREDIT_SPREAD]
    sp500: float = DEFAULT_STATIC_VALUES[IndicatorKey.SP500]

    def as_mapping(self) -> Dict[IndicatorKey, float]:
        return {
            IndicatorKey.CAPE: self.cape,
            IndicatorKey.BUFFETT: self.buffett,
            IndicatorKey.CREDIT_SPREAD: self.credit_spread,
            IndicatorKey.SP500: self.sp500,
        }

    def to_dict(self) -> Dict[str, float]:
        return {
            "cape": self.cape,
            "buffett": self.buffett,
            "credit_spread": self.credit_spread,
            "sp500": self.sp500,
        }


@dataclass
class EngineConfig:
    """
    Main configuration for the valuation engine.

    Combines all sub-configurations.
    """
    sources: SourceConfig = field(default_factory=SourceConfig)
    cache_ttl: CacheTTLConfig = field(default_factory=CacheTTLConfig)
    static_defaults: StaticDefaults = field(default_factory=StaticDefaults)

    # Flags
    buffett_all_time_high: float = BUFFETT_ALL_TIME_HIGH_THRESHOLD

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - CACHE_TTL_CREDIT_SPREAD
        - CACHE_TTL_SP500
        - CACHE_TTL_COMPOSITE
        - CACHE_TTL_CAPE
        - CACHE_TTL_BUFFETT
        - BUFFETT_ALL_TIME_HIGH
        - SOURCE_* / *_URL / *_SERIES (see SourceConfig.from_env)
        """
        config = cls(sources=SourceConfig.from_env())

        ttl = config.cache_ttl
        if os.getenv("CACHE_TTL_CREDIT_SPREAD"):
            ttl.credit_spread = float(os.getenv("CACHE_TTL_CREDIT_SPREAD"))
        if os.getenv("CACHE_TTL_SP500"):
            ttl.sp500 = float(os.getenv("CACHE_TTL_SP500"))
        if os.getenv("CACHE_TTL_COMPOSITE"):
            ttl.composite_snapshot = float(os.getenv("CACHE_TTL_COMPOSITE"))
        if os.getenv("CACHE_TTL_CAPE"):
            ttl.cape = float(os.getenv("CACHE_TTL_CAPE"))
        if os.getenv("CACHE_TTL_BUFFETT"):
            ttl.buffett = float(os.getenv("CACHE_TTL_BUFFETT"))
        # Re-validate after overrides
        ttl.__post_init__()

        if os.getenv("BUFFETT_ALL_TIME_HIGH"):
            config.buffett_all_time_high = float(os.getenv("BUFFETT_ALL_TIME_HIGH"))

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineConfig":
        """
        Load configuration from a YAML file.

        Layout:
            sources: {timeout_seconds: 10, fred_csv_url: ...}
            cache_ttl: {cape: 86400, credit_spread: 3600, ...}
            static_defaults: {cape: 38.0, ...}
            buffett_all_time_high: 240
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "sources" in data:
            config.sources = SourceConfig.from_dict(data["sources"] or {})

        if "cache_ttl" in data:
            t = data["cache_ttl"] or {}
            defaults = CacheTTLConfig()
            config.cache_ttl = CacheTTLConfig(
                credit_spread=float(t.get("credit_spread", defaults.credit_spread)),
                sp500=float(t.get("sp500", defaults.sp500)),
                composite_snapshot=float(t.get("composite_snapshot", defaults.composite_snapshot)),
                cape=float(t.get("cape", defaults.cape)),
                buffett=float(t.get("buffett", defaults.buffett)),
            )

        if "static_defaults" in data:
            s = data["static_defaults"] or {}
            defaults = StaticDefaults()
            config.static_defaults = StaticDefaults(
                cape=float(s.get("cape", defaults.cape)),
                buffett=float(s.get("buffett", defaults.buffett)),
                credit_spread=float(s.get("credit_spread", defaults.credit_spread)),
                sp500=float(s.get("sp500", defaults.sp500)),
            )

        if "buffett_all_time_high" in data:
            config.buffett_all_time_high = float(data["buffett_all_time_high"])

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sources": self.sources.to_dict(),
            "cache_ttl": self.cache_ttl.to_dict(),
            "static_defaults": self.static_defaults.to_dict(),
            "buffett_all_time_high": self.buffett_all_time_high,
        }


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Load configuration from `path`, the CYCLE_TRACKER_CONFIG file, or the environment.

    A YAML file that cannot be read falls back to the environment with a warning.
    """
    if path is None and os.getenv(CONFIG_PATH_ENV):
        path = Path(os.environ[CONFIG_PATH_ENV])

    if path is not None:
        try:
            config = EngineConfig.from_yaml(path)
            logger.info(f"Loaded config from {path}")
            return config
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load YAML config from {path}: {e}")

    return EngineConfig.from_env()
