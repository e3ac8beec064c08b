import logging
import uuid
from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classbook.core.errors import Conflict, NotFound, QueryCapabilityError, Unavailable, ValidationError
from classbook.models.appointment import Appointment, AppointmentStatus
from classbook.schemas import AppointmentRecord, Identity
from classbook.services.lifecycle import Party, authorize_removal, authorize_transition

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ('requester_id', 'owner_id')
SORT_FIELD = 'scheduled_at'


class NewAppointment(Protocol):
    requester_id: str
    requester_name: str
    owner_id: str
    owner_name: str
    title: str
    description: str
    scheduled_at: datetime


class AppointmentStore(Protocol):
    def create(self, appointment: NewAppointment, acting_user_id: str) -> AppointmentRecord: ...

    def get(self, appointment_id: str) -> AppointmentRecord: ...

    def transition(
        self, appointment_id: str, new_status: AppointmentStatus, actor: Identity,
    ) -> tuple[AppointmentRecord, AppointmentRecord, Party]: ...

    def delete(self, appointment_id: str, actor: Identity) -> tuple[AppointmentRecord, Party]: ...

    def query_sorted(
        self, field: str | None, value: str | None, status: AppointmentStatus | None, limit: int,
    ) -> list[AppointmentRecord]: ...

    def query_unsorted(self, field: str | None, value: str | None) -> list[AppointmentRecord]: ...


def _check_identity_field(field: str | None) -> None:
    if field is not None and field not in IDENTITY_FIELDS:
        raise ValueError(f'Unsupported identity field: {field}')


class SqlAppointmentStore:
    """Owns the ``appointments`` rows; everything it returns is a frozen projection.

    Status changes and removals are conditional writes keyed on ``version``: the
    row is only touched when nobody changed it since it was read, otherwise
    ``Conflict`` is raised and nothing is written.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self._db = db
        self._clock = clock

    def create(self, appointment: NewAppointment, acting_user_id: str) -> AppointmentRecord:
        if appointment.requester_id == appointment.owner_id:
            raise ValidationError(
                'The student and the teacher of an appointment must be different people.',
                detail_code='same_party',
            )

        now = self._clock()
        if appointment.scheduled_at <= now:
            raise ValidationError('Appointments must be scheduled in the future.', detail_code='scheduled_in_past')

        row = Appointment(
            id=uuid.uuid4().hex,
            requester_id=appointment.requester_id,
            requester_name=appointment.requester_name,
            owner_id=appointment.owner_id,
            owner_name=appointment.owner_name,
            title=appointment.title,
            description=appointment.description,
            scheduled_at=appointment.scheduled_at,
            status=AppointmentStatus.PENDING.value,
            created_at=now,
            created_by=acting_user_id,
            version=1,
        )

        try:
            self._db.add(row)
            self._db.commit()
            self._db.refresh(row)
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Appointment insert failed for requester %s', appointment.requester_id)
            raise Unavailable(outcome_unknown=True) from exc

        return AppointmentRecord.model_validate(row)

    def get(self, appointment_id: str) -> AppointmentRecord:
        try:
            row = self._db.query(Appointment).filter(Appointment.id == appointment_id).first()
        except SQLAlchemyError as exc:
            logger.exception('Appointment lookup failed for %s', appointment_id)
            raise Unavailable() from exc

        if row is None:
            raise NotFound('Appointment not found.', detail_code='appointment_not_found')
        return AppointmentRecord.model_validate(row)

    def transition(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        actor: Identity,
    ) -> tuple[AppointmentRecord, AppointmentRecord, Party]:
        """Read, validate, then write ``new_status`` if the row is unchanged.

        Returns the record as read, the record as written and the capacity the
        actor acted in.
        """
        current = self.get(appointment_id)
        party = authorize_transition(actor, current, new_status)

        try:
            updated_rows = self._db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.version == current.version,
                Appointment.status == current.status.value,
            ).update(
                {
                    Appointment.status: new_status.value,
                    Appointment.updated_at: self._clock(),
                    Appointment.updated_by: actor.id,
                    Appointment.version: current.version + 1,
                },
                synchronize_session=False,
            )
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Status write failed for appointment %s', appointment_id)
            raise Unavailable(outcome_unknown=True) from exc

        if updated_rows == 0:
            self._raise_lost_race(appointment_id, current)

        return current, self.get(appointment_id), party

    def delete(self, appointment_id: str, actor: Identity) -> tuple[AppointmentRecord, Party]:
        current = self.get(appointment_id)
        party = authorize_removal(actor, current)

        try:
            deleted_rows = self._db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.version == current.version,
            ).delete(synchronize_session=False)
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Delete failed for appointment %s', appointment_id)
            raise Unavailable(outcome_unknown=True) from exc

        if deleted_rows == 0:
            self._raise_lost_race(appointment_id, current)

        return current, party

    def _raise_lost_race(self, appointment_id: str, read: AppointmentRecord) -> None:
        self._db.expire_all()
        latest = self.get(appointment_id)
        logger.info(
            'Conditional write on appointment %s lost: read version %s, found version %s (%s)',
            appointment_id, read.version, latest.version, latest.status.value,
        )
        raise Conflict(
            'This appointment was changed by someone else. Reload it and try again.',
            detail_code='stale_version',
        )

    def has_sorted_index(self, field: str | None) -> bool:
        expected = [field, SORT_FIELD] if field else [SORT_FIELD]
        try:
            indexes = inspect(self._db.get_bind()).get_indexes(Appointment.__tablename__)
        except SQLAlchemyError as exc:
            raise Unavailable() from exc

        return any(list(index['column_names'][:len(expected)]) == expected for index in indexes)

    def query_sorted(
        self,
        field: str | None,
        value: str | None,
        status: AppointmentStatus | None,
        limit: int,
    ) -> list[AppointmentRecord]:
        _check_identity_field(field)
        if not self.has_sorted_index(field):
            raise QueryCapabilityError(field or '*', SORT_FIELD)

        try:
            query = self._db.query(Appointment)
            if field is not None:
                query = query.filter(getattr(Appointment, field) == value)
            if status is not None:
                query = query.filter(Appointment.status == status.value)
            query = query.order_by(
                Appointment.scheduled_at.desc(),
                Appointment.created_at.desc(),
                Appointment.id.desc(),
            )
            if limit > 0:
                query = query.limit(limit)
            rows = query.all()
        except SQLAlchemyError as exc:
            logger.warning('Sorted appointment query failed for %s=%s', field, value)
            raise Unavailable() from exc

        return [AppointmentRecord.model_validate(row) for row in rows]

    def query_unsorted(self, field: str | None, value: str | None) -> list[AppointmentRecord]:
        _check_identity_field(field)
        try:
            query = self._db.query(Appointment)
            if field is not None:
                query = query.filter(getattr(Appointment, field) == value)
            rows = query.all()
        except SQLAlchemyError as exc:
            logger.exception('Unsorted appointment query failed for %s=%s', field, value)
            raise Unavailable() from exc

        return [AppointmentRecord.model_validate(row) for row in rows]
