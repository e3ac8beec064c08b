"""Ordered, filtered appointment listings per caller.

Two strategies produce the same logical result. ``SortedQueryStrategy`` asks the
store to filter, sort by ``scheduled_at`` descending and cap server-side.
``FetchThenSortStrategy`` fetches every appointment for the caller's identity
and does the sorting, status filtering and capping in memory. The resolver always
tries the sorted strategy first and only falls back when it reports it cannot
serve the query (missing composite index) or the store is unavailable.
"""

import logging
import threading
from typing import Protocol

from classbook.core.errors import Cancelled, QueryCapabilityError, Unavailable, ValidationError
from classbook.models.appointment import AppointmentStatus
from classbook.models.user import Role
from classbook.schemas import AppointmentRecord, Identity
from classbook.services.appointment_store import AppointmentStore

logger = logging.getLogger(__name__)

ALL_STATUSES = 'all'

ROLE_FIELDS = {
    Role.STUDENT: 'requester_id',
    Role.TEACHER: 'owner_id',
    Role.ADMIN: None,
}


class CancellationToken:
    """Cooperative cancellation for a listing that a newer request superseded."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled('Listing request was cancelled.')


class ListingQuery:
    def __init__(
        self,
        field: str | None,
        value: str | None,
        status: AppointmentStatus | None = None,
        limit: int = 0,
    ):
        self.field = field
        self.value = value
        self.status = status
        self.limit = limit

    def __repr__(self) -> str:
        status = self.status.value if self.status else ALL_STATUSES
        return f'ListingQuery({self.field}={self.value!r}, status={status}, limit={self.limit})'


class ListingStrategy(Protocol):
    name: str

    def fetch(self, query: ListingQuery, cancel: CancellationToken | None = None) -> list[AppointmentRecord]: ...


def parse_status_filter(value: str | AppointmentStatus | None) -> AppointmentStatus | None:
    if value is None or isinstance(value, AppointmentStatus):
        return value

    normalized = value.strip().lower()
    if not normalized or normalized == ALL_STATUSES:
        return None
    try:
        return AppointmentStatus(normalized)
    except ValueError as exc:
        raise ValidationError(f'Unknown status filter: {value!r}.', detail_code='invalid_status_filter') from exc


def sort_key(appointment: AppointmentRecord):
    return (appointment.scheduled_at, appointment.created_at, appointment.id)


def matches_search(appointment: AppointmentRecord, search: str) -> bool:
    needle = search.strip().lower()
    if not needle:
        return True
    return (
        needle in appointment.title.lower()
        or needle in appointment.owner_name.lower()
        or needle in appointment.requester_name.lower()
    )


class SortedQueryStrategy:
    name = 'sorted'

    def __init__(self, store: AppointmentStore):
        self._store = store

    def fetch(self, query: ListingQuery, cancel: CancellationToken | None = None) -> list[AppointmentRecord]:
        return self._store.query_sorted(query.field, query.value, query.status, query.limit)


class FetchThenSortStrategy:
    name = 'fetch_then_sort'

    def __init__(self, store: AppointmentStore):
        self._store = store

    def fetch(self, query: ListingQuery, cancel: CancellationToken | None = None) -> list[AppointmentRecord]:
        appointments = self._store.query_unsorted(query.field, query.value)
        if cancel:
            cancel.raise_if_cancelled()

        appointments.sort(key=sort_key, reverse=True)
        if cancel:
            cancel.raise_if_cancelled()

        results: list[AppointmentRecord] = []
        for appointment in appointments:
            if query.status is not None and appointment.status != query.status:
                continue
            results.append(appointment)
            if 0 < query.limit <= len(results):
                break
        return results


class AppointmentQueryResolver:
    def __init__(self, store: AppointmentStore, primary: ListingStrategy | None = None,
                 fallback: ListingStrategy | None = None):
        self.primary = primary or SortedQueryStrategy(store)
        self.fallback = fallback or FetchThenSortStrategy(store)

    def resolve(
        self,
        caller: Identity,
        status: str | AppointmentStatus | None = None,
        limit: int = 0,
        search: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[AppointmentRecord]:
        if limit < 0:
            raise ValidationError('Limit must be zero (no cap) or positive.', detail_code='invalid_limit')

        query = ListingQuery(
            field=ROLE_FIELDS[caller.role],
            value=None if caller.role == Role.ADMIN else caller.id,
            status=parse_status_filter(status),
            limit=limit,
        )

        try:
            appointments = self.primary.fetch(query, cancel)
        except (QueryCapabilityError, Unavailable) as primary_error:
            logger.warning('Primary listing failed for %r (%s); using %s', query, primary_error, self.fallback.name)
            try:
                appointments = self.fallback.fetch(query, cancel)
            except Unavailable:
                logger.error('Fallback listing failed for %r', query)
                raise
            logger.info('Appointments fetched with fallback query: %d', len(appointments))
        else:
            logger.info('Appointments fetched: %d', len(appointments))

        if search:
            appointments = [appointment for appointment in appointments if matches_search(appointment, search)]
        return appointments
