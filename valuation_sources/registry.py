"""
Source Registry - Per-indicator source lists with fallback logic.

Provides:
- Source registration per indicator, in priority order
- Fallback to secondary sources on failure
- Health and incident reporting across all sources
- No downstream dependency on specific providers
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from valuation_sources.base import BaseValuationSource
from valuation_sources.exceptions import DataSourceError
from valuation_sources.models import (
    FetchResult,
    SourceHealth,
    SourceIncident,
    SourceStatus,
)


logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Registry mapping each indicator to its ordered sources.

    Usage:
        registry = SourceRegistry()
        registry.register("cape", MultplCapeSource())
        registry.register("cape", ShillerWorkbookSource())

        # Tries multpl first, the workbook on failure
        result = await registry.fetch("cape")
    """

    def __init__(self, max_incidents: int = 1000) -> None:
        self._sources: dict[str, list[tuple[int, BaseValuationSource]]] = {}

        # Incident tracking
        self._incidents: list[SourceIncident] = []
        self._max_incidents = max_incidents

        # Event callbacks
        self._on_fallback_callbacks: list[Callable[[str, str, str], None]] = []

    def register(
        self,
        indicator: str,
        source: BaseValuationSource,
        priority: Optional[int] = None,
    ) -> None:
        """
        Register a source for an indicator.

        Args:
            indicator: Indicator key the source produces
            source: Source instance
            priority: Lower = tried first (defaults to metadata priority)
        """
        if priority is None:
            priority = source.metadata().priority

        entries = self._sources.setdefault(indicator, [])
        if any(existing.name == source.name for _, existing in entries):
            logger.warning(f"Source '{source.name}' already registered for '{indicator}', replacing")
            entries[:] = [(p, s) for p, s in entries if s.name != source.name]

        entries.append((priority, source))
        # Stable sort keeps registration order among equal priorities
        entries.sort(key=lambda entry: entry[0])

        logger.info(f"Registered source '{source.name}' for '{indicator}' with priority {priority}")

    def indicators(self) -> list[str]:
        """List indicators that have at least one source."""
        return [name for name, entries in self._sources.items() if entries]

    def sources_for(self, indicator: str) -> list[BaseValuationSource]:
        """Sources for an indicator in priority order."""
        return [source for _, source in self._sources.get(indicator, [])]

    def all_sources(self) -> dict[str, BaseValuationSource]:
        """Every registered source keyed by name."""
        unique: dict[str, BaseValuationSource] = {}
        for entries in self._sources.values():
            for _, source in entries:
                unique.setdefault(source.name, source)
        return unique

    async def fetch(self, indicator: str) -> FetchResult:
        """
        Fetch an indicator, falling back through its sources.

        Unavailable sources are demoted to the end of the list rather than
        skipped, so a recovered upstream is picked up again.

        Note:
            Never raises - returns a failed FetchResult when every source fails
        """
        sources = self.sources_for(indicator)
        if not sources:
            error = DataSourceError(
                message=f"No sources registered for '{indicator}'",
                context={"indicator": indicator},
            )
            logger.error(str(error))
            return FetchResult.failure(error)

        ordered = (
            [s for s in sources if s.get_health().status != SourceStatus.UNAVAILABLE]
            + [s for s in sources if s.get_health().status == SourceStatus.UNAVAILABLE]
        )

        attempted: list[str] = []
        last_result: Optional[FetchResult] = None

        for source in ordered:
            attempted.append(source.name)
            result = await source.fetch()

            if result.ok:
                if len(attempted) > 1:
                    self._on_fallback(indicator, attempted[0], source.name)
                return result

            last_result = result

        logger.error(f"All sources failed for '{indicator}': {attempted}")
        self._log_incident(
            "registry",
            "all_sources_failed",
            f"Attempted sources for '{indicator}': {attempted}",
        )

        return FetchResult.failure(
            DataSourceError(
                message=f"All sources failed for '{indicator}'",
                original_error=last_result.error if last_result else None,
                context={"indicator": indicator, "attempted_sources": attempted},
            )
        )

    def on_fallback(self, callback: Callable[[str, str, str], None]) -> None:
        """Register callback for source fallback (indicator, from_source, to_source)."""
        self._on_fallback_callbacks.append(callback)

    def _on_fallback(self, indicator: str, from_source: str, to_source: str) -> None:
        """Handle source fallback."""
        logger.warning(f"Fallback for '{indicator}': {from_source} -> {to_source}")

        self._log_incident(from_source, "fallback", f"Switched to {to_source} for '{indicator}'")

        for callback in self._on_fallback_callbacks:
            try:
                callback(indicator, from_source, to_source)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")

    def _log_incident(self, source_name: str, incident_type: str, message: str) -> None:
        """Log an incident."""
        self._incidents.append(
            SourceIncident(
                source_name=source_name,
                incident_type=incident_type,
                timestamp=datetime.now(timezone.utc),
                error_message=message,
            )
        )

        # Trim to max size
        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

    def get_incidents(self, limit: int = 100) -> list[SourceIncident]:
        """Get recent registry-level incidents."""
        return self._incidents[-limit:]

    def get_all_health(self) -> dict[str, SourceHealth]:
        """Get health status for all registered sources."""
        return {name: source.get_health() for name, source in self.all_sources().items()}

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        sources = self.all_sources()
        health_summary = {
            status.value: sum(1 for s in sources.values() if s.get_health().status == status)
            for status in SourceStatus
        }

        return {
            "total_sources": len(sources),
            "indicators": {
                indicator: [source.name for source in self.sources_for(indicator)]
                for indicator in self.indicators()
            },
            "health_summary": health_summary,
            "total_incidents": len(self._incidents),
            "sources": {
                name: {
                    "status": source.get_health().status.value,
                    "consecutive_failures": source.get_health().consecutive_failures,
                    "last_error": source.get_health().last_error,
                }
                for name, source in sources.items()
            },
        }

    async def close(self) -> None:
        """Close all sources."""
        for source in self.all_sources().values():
            try:
                await source.close()
            except Exception as e:
                logger.error(f"Error closing source {source.name}: {e}")

        self._sources.clear()
        logger.info("Registry closed")

    async def __aenter__(self) -> "SourceRegistry":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
