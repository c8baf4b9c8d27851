"""
Error taxonomy for the report lifecycle.

Every error is scoped to the operation that raised it. None of them is
fatal to the process; routes translate them into HTTP responses.
"""

from typing import Iterable, List, Optional


class ReportError(Exception):
    """Base class for all report lifecycle errors."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReportError):
    """A required field is missing or malformed. No write was attempted."""

    def __init__(self, fields: Iterable[str], message: Optional[str] = None):
        self.fields: List[str] = list(fields)
        super().__init__(message or f"Missing or invalid field(s): {', '.join(self.fields)}")


class IllegalTransitionError(ReportError):
    """Requested status change is not an edge of the lifecycle. No write was attempted."""

    def __init__(self, from_status: str, to_status: str, allowed: Optional[List[str]] = None):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed or []
        super().__init__(
            f"Invalid status transition: {from_status} → {to_status}. "
            f"Allowed transitions from {from_status}: {self.allowed}"
        )


class PermissionDeniedError(ReportError):
    """The acting identity's user_type does not permit this mutation."""


class ReportNotFoundError(ReportError):
    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Report {report_id} not found")


class FetchError(ReportError):
    """Persistence backend unreachable or rejected a read."""

    retryable = True


class WriteError(ReportError):
    """Persistence backend unreachable or rejected a write."""

    retryable = True


class WriteTimeoutError(WriteError):
    """A write did not complete within WRITE_TIMEOUT_SECONDS."""


class WriteInFlightError(WriteError):
    """Another status change for the same report has not been confirmed yet. No write was attempted."""

    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"A status change for report {report_id} is still awaiting confirmation")


class SubscriptionLostError(ReportError):
    """The change stream dropped and reconnecting exhausted its attempts."""

    retryable = True
