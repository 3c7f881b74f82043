"""Scheduling error kinds shared by the services and the HTTP routes."""

from fastapi import HTTPException, status


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(SchedulingError):
    """Missing or malformed input, or an illegal status transition."""
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class SlotUnavailable(SchedulingError):
    """The requested interval conflicts with a commitment or lies outside availability."""
    status_code = status.HTTP_409_CONFLICT


class TransactionFailed(SchedulingError):
    """A data-access fault; the transaction was rolled back and may be retried."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, detail: str = 'Database unavailable. Verify DATABASE_URL and database credentials.'):
        super().__init__(detail)


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
