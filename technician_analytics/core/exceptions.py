"""
Exception hierarchy for the technician analytics engine.

Propagation policy:
- SourceUnavailable: recorded in query diagnostics, never aborts a query.
- EmptyCohort / InvalidWindow: caller errors, fail the whole call.
- MalformedRecord: dropped at the aggregation boundary and counted.
- TelemetryUnavailable: route scoring degrades to the distance estimate.
"""

from datetime import date
from typing import Optional


class AnalyticsError(Exception):
    """Base exception for all analytics engine errors."""

    pass


class SourceUnavailable(AnalyticsError):
    """Raised when one of the three case stores fails to respond."""

    def __init__(self, source: str, original_error: Optional[Exception] = None):
        self.source = source
        self.original_error = original_error

        message = f"Case store '{source}' is unavailable"
        if original_error:
            message = f"{message} (Original error: {original_error})"

        super().__init__(message)


class EmptyCohort(AnalyticsError):
    """Raised when a query resolves to no active technicians."""

    def __init__(self, message: str = "No active technicians in cohort"):
        super().__init__(message)


class InvalidWindow(AnalyticsError):
    """Raised when a query window ends before it starts."""

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end
        super().__init__(
            f"Invalid window: end {end.isoformat()} is before start {start.isoformat()}"
        )


class MalformedRecord(AnalyticsError):
    """Raised for a case record that cannot take part in aggregation."""

    def __init__(self, reason: str, case_id: Optional[str] = None, source: Optional[str] = None):
        self.reason = reason
        self.case_id = case_id
        self.source = source

        error_parts = [reason]
        if source:
            error_parts.append(f"Source: {source}")
        if case_id:
            error_parts.append(f"Case: {case_id}")

        super().__init__(" | ".join(error_parts))


class TelemetryUnavailable(AnalyticsError):
    """Raised when the vehicle telemetry provider cannot be reached."""

    pass
