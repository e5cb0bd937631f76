"""
Exception hierarchy for the sync engine.

Upstream errors are classified at the client boundary; the retry policy
and the sync orchestrator decide what to do with each class.
"""

from typing import Any, Optional


class MetricsSyncError(Exception):
    """Base class for all sync errors."""


class AuthError(MetricsSyncError):
    """Credential exchange failed or credentials are not configured."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class UpstreamError(MetricsSyncError):
    """Base class for upstream call failures."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        self.status = status
        self.payload = payload
        super().__init__(message)


class UpstreamTransientError(UpstreamError):
    """Network error, timeout or 5xx. Retried with backoff."""


class UpstreamRejectedError(UpstreamError):
    """4xx response. Never retried."""


class UpstreamJobError(UpstreamError):
    """Bulk export job could not be created or reported failure."""


class UpstreamTimeoutError(UpstreamError):
    """Bulk export job did not finish within the polling budget."""


class ValidationSkip(MetricsSyncError):
    """Row is missing required fields; counted as skipped, not as an error."""


class PersistenceConflict(MetricsSyncError):
    """Duplicate key hit while writing a record; counted as skipped."""


class PersistenceFatal(MetricsSyncError):
    """Any other write failure; reported in the run's errors."""
