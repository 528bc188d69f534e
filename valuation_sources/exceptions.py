"""
Valuation Source Exceptions - Failure taxonomy for upstream data sources.

Every exception in this module is caught at the source boundary and turned
into a failed FetchResult. None of them ever reaches the aggregator.

    DataSourceError (base)
    ├── NetworkFailure      timeout, connection error, HTTP error status
    ├── ParseFailure        payload shape unexpected, column/pattern not found
    ├── NoDataFailure       payload parsed but held no usable value
    └── ConfigurationError  source constructed with unusable settings
"""

from datetime import datetime, timezone
from typing import Any, Optional


class DataSourceError(Exception):
    """Base exception for all valuation source errors."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source_name = source_name
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_name": self.source_name,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.source_name:
            parts.append(f"[source={self.source_name}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class NetworkFailure(DataSourceError):
    """Timeout, connection failure or HTTP error status from the provider."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
        request_url: Optional[str] = None,
        timeout: bool = False,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, original_error, context)
        self.status_code = status_code
        self.request_url = request_url
        self.timeout = timeout

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "request_url": self.request_url,
            "timeout": self.timeout,
        })
        return data

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return self.status_code is not None and 500 <= self.status_code < 600

    def is_client_error(self) -> bool:
        """Check if error is client-side."""
        return self.status_code is not None and 400 <= self.status_code < 500


class ParseFailure(DataSourceError):
    """Payload did not have the expected shape."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        field_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, original_error, context)
        self.raw_data = raw_data
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,  # Truncate
            "field_name": self.field_name,
        })
        return data


class NoDataFailure(DataSourceError):
    """Payload parsed cleanly but contained no usable observation."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        rows_scanned: int = 0,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, original_error, context)
        self.rows_scanned = rows_scanned

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["rows_scanned"] = self.rows_scanned
        return data


class ConfigurationError(DataSourceError, ValueError):
    """Unusable source settings. Also a ValueError for config loaders."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
