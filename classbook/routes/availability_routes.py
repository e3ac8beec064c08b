from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.orm import Session

from classbook.auth.dependencies import get_current_identity
from classbook.core.errors import BookingError, Forbidden, to_http_exception
from classbook.database import get_db
from classbook.models.availability import WEEKDAYS
from classbook.models.user import Role
from classbook.routes.appointment_routes import ensure_database_ready
from classbook.schemas import AvailabilitySlotRecord, Identity
from classbook.services.appointment_service import build_appointment_service
from classbook.services.availability_store import SqlAvailabilityStore

router = APIRouter(tags=['availability'])


class CreateSlotRequest(BaseModel):
    owner_id: str | None = None
    is_recurring: bool
    day_of_week: str | None = None
    slot_date: date | None = None
    start_time: time
    end_time: time

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip().lower()
        if normalized not in WEEKDAYS:
            raise ValueError('Day of week must be a weekday name such as "monday".')
        return normalized

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode='after')
    def validate_shape(self):
        if self.is_recurring and (self.day_of_week is None or self.slot_date is not None):
            raise ValueError('Recurring slots need a day_of_week and no slot_date.')
        if not self.is_recurring and (self.slot_date is None or self.day_of_week is not None):
            raise ValueError('One-off slots need a slot_date and no day_of_week.')
        if self.start_time >= self.end_time:
            raise ValueError('start_time must be before end_time.')
        return self


class SlotResponse(BaseModel):
    id: str
    owner_id: str
    is_recurring: bool
    day_of_week: str | None = None
    slot_date: date | None = None
    start_time: time
    end_time: time


class SlotCheckResponse(BaseModel):
    owner_id: str
    instant: datetime
    is_available: bool


def to_slot_response(slot: AvailabilitySlotRecord) -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        owner_id=slot.owner_id,
        is_recurring=slot.is_recurring,
        day_of_week=slot.day_of_week,
        slot_date=slot.slot_date,
        start_time=slot.start_time,
        end_time=slot.end_time,
    )


def resolve_slot_owner(identity: Identity, requested_owner_id: str | None) -> str:
    if identity.role == Role.ADMIN and requested_owner_id:
        return requested_owner_id
    if identity.role != Role.TEACHER:
        raise Forbidden('Only teachers can manage availability.', detail_code='teacher_only')
    if requested_owner_id and requested_owner_id != identity.id:
        raise Forbidden('Teachers can only manage their own availability.', detail_code='not_slot_owner')
    return identity.id


@router.post('/slots', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    data: CreateSlotRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        owner_id = resolve_slot_owner(identity, data.owner_id)
        slot = SqlAvailabilityStore(db).add_slot(
            owner_id,
            is_recurring=data.is_recurring,
            day_of_week=data.day_of_week,
            slot_date=data.slot_date,
            start_time=data.start_time,
            end_time=data.end_time,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return to_slot_response(slot)


@router.delete('/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_slot(
    slot_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    store = SqlAvailabilityStore(db)
    try:
        slot = store.get_slot(slot_id)
        if not identity.is_admin and slot.owner_id != identity.id:
            raise Forbidden('Only the owner can remove this availability slot.', detail_code='not_slot_owner')
        store.remove_slot(slot_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/slots', response_model=list[SlotResponse], dependencies=[Depends(get_current_identity)])
def list_slots(
    owner_id: str = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = SqlAvailabilityStore(db).get_slots(owner_id.strip())
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return [to_slot_response(slot) for slot in slots]


@router.get('/check', response_model=SlotCheckResponse, dependencies=[Depends(get_current_identity)])
def check_slot(
    owner_id: str = Query(...),
    instant: datetime = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    local_instant = instant.replace(tzinfo=None)
    try:
        is_available = build_appointment_service(db).is_slot_available(owner_id.strip(), local_instant)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return SlotCheckResponse(owner_id=owner_id.strip(), instant=local_instant, is_available=is_available)
