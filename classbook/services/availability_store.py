import logging
import uuid
from datetime import date, datetime, time
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classbook.core.errors import NotFound, Unavailable, ValidationError
from classbook.models.availability import WEEKDAYS, AvailabilitySlot
from classbook.schemas import AvailabilitySlotRecord

logger = logging.getLogger(__name__)


class AvailabilityStore(Protocol):
    def get_slots(self, owner_id: str) -> list[AvailabilitySlotRecord]: ...


def normalize_day_of_week(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if not normalized:
        return None
    if normalized not in WEEKDAYS:
        raise ValidationError(f'Unknown day of week: {value!r}.', detail_code='invalid_day_of_week')
    return normalized


def validate_slot_shape(
    is_recurring: bool,
    day_of_week: str | None,
    slot_date: date | None,
    start_time: time,
    end_time: time,
) -> None:
    if is_recurring:
        if day_of_week is None or slot_date is not None:
            raise ValidationError(
                'A recurring slot needs a day of week and no date.',
                detail_code='invalid_slot_shape',
            )
    elif slot_date is None or day_of_week is not None:
        raise ValidationError(
            'A one-off slot needs a date and no day of week.',
            detail_code='invalid_slot_shape',
        )

    if start_time >= end_time:
        raise ValidationError('Slot start time must be before its end time.', detail_code='invalid_slot_range')


def sort_slots(slots: list[AvailabilitySlotRecord]) -> list[AvailabilitySlotRecord]:
    def key(slot: AvailabilitySlotRecord):
        if slot.is_recurring:
            return (0, WEEKDAYS.index(slot.day_of_week), date.min, slot.start_time, slot.id)
        return (1, 0, slot.slot_date, slot.start_time, slot.id)

    return sorted(slots, key=key)


class SqlAvailabilityStore:
    """Availability slots backed by the ``availability_slots`` table.

    The booking engine only calls ``get_slots``; the write methods serve the
    owner's own calendar management endpoints.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self._db = db
        self._clock = clock

    def get_slots(self, owner_id: str) -> list[AvailabilitySlotRecord]:
        try:
            rows = self._db.query(AvailabilitySlot).filter(AvailabilitySlot.owner_id == owner_id).all()
        except SQLAlchemyError as exc:
            logger.exception('Availability lookup failed for owner %s', owner_id)
            raise Unavailable() from exc

        return sort_slots([AvailabilitySlotRecord.model_validate(row) for row in rows])

    def get_slot(self, slot_id: str) -> AvailabilitySlotRecord:
        try:
            row = self._db.query(AvailabilitySlot).filter(AvailabilitySlot.id == slot_id).first()
        except SQLAlchemyError as exc:
            raise Unavailable() from exc

        if row is None:
            raise NotFound('Availability slot not found.', detail_code='slot_not_found')
        return AvailabilitySlotRecord.model_validate(row)

    def add_slot(
        self,
        owner_id: str,
        *,
        is_recurring: bool,
        start_time: time,
        end_time: time,
        day_of_week: str | None = None,
        slot_date: date | None = None,
    ) -> AvailabilitySlotRecord:
        day_of_week = normalize_day_of_week(day_of_week)
        validate_slot_shape(is_recurring, day_of_week, slot_date, start_time, end_time)

        slot = AvailabilitySlot(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            is_recurring=is_recurring,
            day_of_week=day_of_week,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            created_at=self._clock(),
        )

        try:
            self._db.add(slot)
            self._db.commit()
            self._db.refresh(slot)
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Could not store availability slot for owner %s', owner_id)
            raise Unavailable(outcome_unknown=True) from exc

        logger.info('Availability slot %s added for owner %s', slot.id, owner_id)
        return AvailabilitySlotRecord.model_validate(slot)

    def remove_slot(self, slot_id: str) -> None:
        try:
            deleted = self._db.query(AvailabilitySlot).filter(AvailabilitySlot.id == slot_id).delete()
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise Unavailable(outcome_unknown=True) from exc

        if not deleted:
            raise NotFound('Availability slot not found.', detail_code='slot_not_found')
        logger.info('Availability slot %s removed', slot_id)
