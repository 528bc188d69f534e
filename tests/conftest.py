"""
Shared fixtures: in-memory sources and a controllable clock.
"""

import asyncio
from typing import Any, Optional

import pytest

from valuation_sources.base import BaseValuationSource
from valuation_sources.exceptions import DataSourceError, NetworkFailure
from valuation_sources.models import Observation, SourceKind, SourceMetadata


class StubSource(BaseValuationSource):
    """Source that returns a preset value (or raises a preset error) without I/O."""

    def __init__(
        self,
        name: str,
        value: Optional[float] = None,
        error: Optional[DataSourceError] = None,
        priority: int = 1,
        delay: float = 0.0,
        details: Optional[dict[str, Any]] = None,
        date: str = "2024-01-02",
        kind: SourceKind = SourceKind.FRED,
        timeout: float = 2.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self._name = name
        self.value = value
        self.error = error
        self.delay = delay
        self.details = details or {}
        self.date = date
        self._priority = priority
        self._kind = kind
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name=self._name,
            display_name=self._name,
            kind=self._kind,
            priority=self._priority,
        )

    async def fetch_raw(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {"value": self.value}

    def parse(self, raw_data: Any) -> Observation:
        return Observation(
            value=raw_data["value"],
            date=self.date,
            source=self._kind,
            source_name=self._name,
            details=dict(self.details),
        )

    def fail_with(self, message: str = "connection refused") -> None:
        self.error = NetworkFailure(message=message, source_name=self._name)

    def recover(self, value: float) -> None:
        self.error = None
        self.value = value


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_source():
    """Factory for StubSource instances."""
    def _make(name: str, value: Optional[float] = None, **kwargs) -> StubSource:
        return StubSource(name, value=value, **kwargs)
    return _make


@pytest.fixture
def clock():
    return FakeClock()
