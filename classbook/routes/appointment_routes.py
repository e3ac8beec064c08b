from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classbook.auth.dependencies import get_current_identity
from classbook.core import config
from classbook.core.errors import BookingError, Unavailable, to_http_exception
from classbook.database import ensure_appointment_schema, ensure_availability_schema, get_db
from classbook.models.appointment import AppointmentStatus
from classbook.schemas import AppointmentRecord, Identity
from classbook.services.appointment_service import build_appointment_service

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    owner_id: str
    requester_id: str | None = None
    title: str
    description: str | None = None
    scheduled_at: datetime

    @field_validator('owner_id', 'requester_id')
    @classmethod
    def validate_party_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError('Participant id cannot be blank.')
        return normalized

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        if len(normalized) > config.MAX_TITLE_LENGTH:
            raise ValueError(f'Title must be {config.MAX_TITLE_LENGTH} characters or fewer.')
        return normalized

    @field_validator('scheduled_at')
    @classmethod
    def validate_scheduled_at(cls, value: datetime) -> datetime:
        # Availability is evaluated in the owner's local wall-clock time.
        return value.replace(second=0, microsecond=0, tzinfo=None)


class ChangeStatusRequest(BaseModel):
    status: AppointmentStatus

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class AppointmentResponse(BaseModel):
    id: str
    title: str
    description: str
    scheduled_at: datetime
    status: AppointmentStatus
    requester_id: str
    requester_name: str
    owner_id: str
    owner_name: str
    created_at: datetime
    updated_at: datetime | None = None
    updated_by: str | None = None
    version: int

    class Config:
        from_attributes = True


def to_response(appointment: AppointmentRecord) -> AppointmentResponse:
    return AppointmentResponse.model_validate(appointment.model_dump())


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise to_http_exception(Unavailable()) from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = build_appointment_service(db).propose_appointment(
            owner_id=data.owner_id,
            requester_id=data.requester_id or identity.id,
            title=data.title,
            description=data.description,
            scheduled_at=data.scheduled_at,
            acting=identity,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return to_response(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: str = Query(default='all', alias='status'),
    limit: int | None = Query(default=None, ge=0, le=config.MAX_LIST_LIMIT),
    search: str | None = Query(default=None, max_length=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = build_appointment_service(db).list_appointments(
            identity.id,
            identity.role,
            status_filter=status_filter,
            limit=limit,
            search=search,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return [to_response(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = build_appointment_service(db).get_appointment(appointment_id, identity)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return to_response(appointment)


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: str,
    data: ChangeStatusRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = build_appointment_service(db).change_status(appointment_id, data.status, identity)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return to_response(appointment)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_appointment(
    appointment_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        build_appointment_service(db).remove_appointment(appointment_id, identity)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
