"""
Base Valuation Source - Abstract interface for all upstream providers.

All providers MUST implement this interface to ensure:
- Isolation
- Replaceability
- Fail-safety: fetch() returns a FetchResult and never raises
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from valuation_sources.exceptions import (
    DataSourceError,
    NetworkFailure,
    NoDataFailure,
    ParseFailure,
)
from valuation_sources.models import (
    FetchResult,
    Observation,
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
)


logger = logging.getLogger(__name__)

# Placeholders providers print instead of a number
MISSING_MARKERS = frozenset({"", ".", "-", "NA", "N/A", "NAN", "NULL", "NONE"})


def parse_finite(value: Any) -> Optional[float]:
    """
    Convert a provider cell to a finite float.

    Returns None for missing markers, unparseable text and non-finite
    numbers so callers can simply skip the row.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if text.upper() in MISSING_MARKERS:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None

    if not math.isfinite(number):
        return None
    return number


class BaseValuationSource(ABC):
    """
    Abstract base class for all valuation data sources.

    Each source implementation must:
    1. Implement fetch_raw() - Get the raw payload from the provider
    2. Implement parse() - Reduce it to one Observation
    3. Implement metadata() - Return provider metadata

    Features:
    - Whole-attempt time bound (the upstream cannot hang the caller)
    - Optional retry on server errors
    - Health tracking
    - Incident logging
    """

    # Configuration defaults (can be overridden by subclasses)
    DEFAULT_TIMEOUT = 10.0
    MAX_RETRIES = 1
    RETRY_BACKOFF_BASE = 2.0
    DEGRADED_THRESHOLD = 3  # consecutive failures before degraded
    UNAVAILABLE_THRESHOLD = 5  # consecutive failures before unavailable
    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._session = session
        self._owns_session = session is None
        self._user_agent = user_agent or self.DEFAULT_USER_AGENT

        # Health tracking
        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self._last_successful_request: Optional[datetime] = None
        self._request_count = 0
        self._success_count = 0
        self._error_count = 0

        # Incident log
        self._incidents: list[SourceIncident] = []
        self._max_incidents = 100

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this data source."""
        pass

    @property
    def timeout(self) -> float:
        return self._timeout

    @abstractmethod
    async def fetch_raw(self) -> Any:
        """
        Fetch the raw payload from the provider.

        Returns:
            Text, bytes or decoded JSON, depending on the provider

        Raises:
            NetworkFailure: If the request fails
        """
        pass

    @abstractmethod
    def parse(self, raw_data: Any) -> Observation:
        """
        Reduce a raw payload to its most recent observation.

        Raises:
            ParseFailure: If the payload does not have the expected shape
            NoDataFailure: If no usable value was found
        """
        pass

    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        pass

    async def fetch(self) -> FetchResult:
        """
        Fetch and parse the latest observation (main entry point).

        Never raises for upstream problems: timeouts, HTTP errors, malformed
        payloads and empty results all come back as a failed FetchResult.
        """
        start_time = time.monotonic()
        try:
            raw_data = await asyncio.wait_for(
                self._fetch_with_retry(),
                timeout=self._timeout,
            )

            if raw_data is None or (hasattr(raw_data, "__len__") and len(raw_data) == 0):
                raise NoDataFailure(
                    message="Empty response",
                    source_name=self.name,
                )

            observation = self.parse(raw_data)

            self._on_success((time.monotonic() - start_time) * 1000)
            return FetchResult.success(observation)

        except asyncio.TimeoutError as e:
            error: DataSourceError = NetworkFailure(
                message=f"Timed out after {self._timeout:.1f}s",
                source_name=self.name,
                timeout=True,
                original_error=e,
            )
        except DataSourceError as e:
            error = e
        except Exception as e:
            error = DataSourceError(
                message=f"Unexpected error: {e}",
                source_name=self.name,
                original_error=e,
            )

        self._on_error(error)
        return FetchResult.failure(error)

    async def _fetch_with_retry(self) -> Any:
        """Fetch, retrying only on server errors."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return await self.fetch_raw()

            except NetworkFailure as e:
                if not e.is_server_error() or attempt + 1 >= self._max_retries:
                    raise
                wait_time = self.RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    f"[{self.name}] Server error {e.status_code}, "
                    f"retrying in {wait_time}s (attempt {attempt + 1}/{self._max_retries})"
                )
                await asyncio.sleep(wait_time)
                last_error = e

        raise NetworkFailure(
            message=f"Failed after {self._max_retries} attempts",
            source_name=self.name,
            original_error=last_error,
        )

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "*/*",
            "User-Agent": self._user_agent,
        }

    async def _make_request(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        response_type: str = "json",
    ) -> Any:
        """
        GET a URL and return its body.

        response_type is one of "json", "text" or "bytes".
        """
        session = await self._get_session()

        start_time = time.monotonic()
        try:
            async with session.get(url, params=params) as response:
                latency_ms = (time.monotonic() - start_time) * 1000
                self._health.latency_ms = latency_ms

                if response.status >= 400:
                    raise NetworkFailure(
                        message=f"HTTP {response.status}",
                        source_name=self.name,
                        status_code=response.status,
                        request_url=url,
                    )

                if response_type == "bytes":
                    body: Any = await response.read()
                elif response_type == "text":
                    body = await response.text()
                else:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError as e:
                        raise ParseFailure(
                            message=f"Invalid JSON: {e}",
                            source_name=self.name,
                            original_error=e,
                        )

                logger.debug(f"[{self.name}] Request completed in {latency_ms:.1f}ms")
                return body

        except aiohttp.ClientError as e:
            raise NetworkFailure(
                message=f"Connection error: {e}",
                source_name=self.name,
                request_url=url,
                original_error=e,
            )

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self, latency_ms: Optional[float] = None) -> None:
        """Handle successful fetch."""
        self._request_count += 1
        self._success_count += 1
        self._last_successful_request = datetime.now(timezone.utc)
        self._health.last_check = self._last_successful_request
        if latency_ms is not None:
            self._health.latency_ms = latency_ms

        # Reset consecutive failures
        self._health.consecutive_failures = 0

        if self._health.status != SourceStatus.HEALTHY:
            if self._health.status != SourceStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = SourceStatus.HEALTHY

    def _on_error(self, error: DataSourceError) -> None:
        """Handle fetch error."""
        self._request_count += 1
        self._error_count += 1
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)
        self._health.last_check = self._health.last_error_time

        # Update health status based on consecutive failures
        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE after {self._health.consecutive_failures} failures")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED after {self._health.consecutive_failures} failures")

        self._log_incident(error)

    def _log_incident(self, error: DataSourceError) -> None:
        """Log an incident."""
        incident = SourceIncident(
            source_name=self.name,
            incident_type=error.__class__.__name__,
            timestamp=datetime.now(timezone.utc),
            error_message=str(error),
            context=error.context or None,
        )

        self._incidents.append(incident)

        # Trim incidents to max size
        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

        logger.warning(f"[{self.name}] Fetch failed: {error}")

    def get_health(self) -> SourceHealth:
        """Get current health status."""
        if self._request_count > 0:
            self._health.uptime_percentage = (
                self._success_count / self._request_count * 100
            )
        return self._health

    def get_incidents(self, limit: int = 10) -> list[SourceIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def is_healthy(self) -> bool:
        """Check if source is healthy."""
        return self._health.status == SourceStatus.HEALTHY

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseValuationSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
