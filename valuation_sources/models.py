"""
Valuation Source Models - Typed observations and source bookkeeping.

Every provider reduces its native payload to a single Observation:
the most recent finite value it could find, with the provider's date.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from valuation_sources.exceptions import DataSourceError


class SourceKind(Enum):
    """Provenance of an observation."""
    FRED = "FRED"
    SHILLER = "Shiller"
    SCRAPED_CAPE = "ScrapedCAPE"
    SCRAPED_QUOTE = "ScrapedQuote"
    STATIC = "static"


class SourceStatus(Enum):
    """Health status of a data source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Observation:
    """
    Most recent value reported by one upstream.

    `value` is always a finite float. `date` is ISO or provider-native
    (Shiller months come through as YYYY-MM).
    """
    value: float
    date: str
    source: SourceKind
    source_name: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise TypeError(f"Observation value must be a number, got {type(self.value).__name__}")
        if not math.isfinite(self.value):
            raise ValueError(f"Observation value must be finite, got {self.value}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "value": self.value,
            "date": self.date,
            "source": self.source.value,
            "source_name": self.source_name,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single fetch attempt: an observation or a failure."""
    observation: Optional[Observation] = None
    error: Optional[DataSourceError] = None

    @property
    def ok(self) -> bool:
        return self.observation is not None

    @classmethod
    def success(cls, observation: Observation) -> "FetchResult":
        return cls(observation=observation)

    @classmethod
    def failure(cls, error: DataSourceError) -> "FetchResult":
        return cls(error=error)


@dataclass
class SourceHealth:
    """Health status of a data source, derived from fetch outcomes."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    uptime_percentage: float = 100.0

    def is_healthy(self) -> bool:
        """Check if source is operational."""
        return self.status == SourceStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if source can still be used (healthy or degraded)."""
        return self.status in (SourceStatus.HEALTHY, SourceStatus.DEGRADED, SourceStatus.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "uptime_percentage": self.uptime_percentage,
        }


@dataclass
class SourceMetadata:
    """Metadata about an upstream provider."""
    name: str
    display_name: str
    kind: SourceKind
    base_url: str = ""
    documentation_url: str = ""
    payload_format: str = "json"  # json, csv, html, xls
    priority: int = 0  # Lower = tried first within an indicator
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "kind": self.kind.value,
            "base_url": self.base_url,
            "documentation_url": self.documentation_url,
            "payload_format": self.payload_format,
            "priority": self.priority,
            "tags": self.tags,
        }


@dataclass
class SourceIncident:
    """Record of a data source incident."""
    source_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    context: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source_name": self.source_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "context": self.context,
        }
