"""Error taxonomy shared by the booking engine, the stores and the HTTP layer.

Every error carries a stable machine-readable ``code`` (and optionally a narrower
``detail_code``) plus a human-readable ``reason``. Routes turn them into
``HTTPException`` with ``to_http_exception``; anything raised outside a route
body is rendered by the handler registered in ``classbook.main``.
"""

from fastapi import HTTPException, status


class BookingError(Exception):
    code = 'booking_error'
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, reason: str, *, detail_code: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.detail_code = detail_code or self.code

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'detail_code': self.detail_code,
            'reason': self.reason,
            'retryable': self.retryable,
        }

    def __repr__(self) -> str:
        return f'{type(self).__name__}(code={self.code!r}, detail_code={self.detail_code!r}, reason={self.reason!r})'


class ValidationError(BookingError):
    """Malformed or temporally invalid proposal."""

    code = 'validation_error'
    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(BookingError):
    code = 'forbidden'
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(BookingError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(BookingError):
    code = 'invalid_transition'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str, requested_status: str, reason: str | None = None):
        super().__init__(
            reason or f'Cannot move an appointment from {current_status} to {requested_status}.',
            detail_code=f'{current_status}_to_{requested_status}',
        )
        self.current_status = current_status
        self.requested_status = requested_status


class Conflict(BookingError):
    """The record changed between read and conditional write; re-read and retry."""

    code = 'conflict'
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class Unavailable(BookingError):
    """Backing store or network failure. Retry with backoff.

    ``outcome_unknown`` is set for mutations that may or may not have been
    applied; callers must confirm state with a read before retrying them.
    """

    code = 'unavailable'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True

    def __init__(self, reason: str = 'Database unavailable. Verify DATABASE_URL and database credentials.', *,
                 detail_code: str | None = None, outcome_unknown: bool = False):
        super().__init__(reason, detail_code=detail_code)
        self.outcome_unknown = outcome_unknown

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['outcome_unknown'] = self.outcome_unknown
        return payload


class QueryCapabilityError(Exception):
    """The store cannot serve a filtered and sorted query, e.g. a composite index is missing."""

    def __init__(self, field: str, sort_field: str):
        super().__init__(f'No composite index available for ({field}, {sort_field}).')
        self.field = field
        self.sort_field = sort_field


class Cancelled(Exception):
    """A superseded listing request was cancelled by its caller."""


def to_http_exception(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
