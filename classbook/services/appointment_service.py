import logging
from datetime import datetime
from typing import Callable

from pydantic import BaseModel
from sqlalchemy.orm import Session

from classbook.core import config
from classbook.core.errors import Conflict, Forbidden, ValidationError
from classbook.models.appointment import AppointmentStatus
from classbook.models.user import ApprovalStatus, Role
from classbook.schemas import AppointmentRecord, Identity
from classbook.services.appointment_store import AppointmentStore, SqlAppointmentStore
from classbook.services.availability_checker import AvailabilityChecker, EmptyAvailabilityPolicy
from classbook.services.availability_store import AvailabilityStore, SqlAvailabilityStore
from classbook.services.events import (
    AppointmentCreated,
    AppointmentRemoved,
    AppointmentStatusChanged,
    EventPublisher,
    default_publisher,
)
from classbook.services.identity import DirectoryIdentityProvider, IdentityProvider
from classbook.services.lifecycle import authorize_creation, require_party_or_admin
from classbook.services.listing import AppointmentQueryResolver, CancellationToken

logger = logging.getLogger(__name__)


class AppointmentDraft(BaseModel):
    requester_id: str
    requester_name: str
    owner_id: str
    owner_name: str
    title: str
    description: str
    scheduled_at: datetime


def clean_text(value: str | None, label: str, max_length: int, required: bool) -> str:
    normalized = (value or '').strip()
    if required and not normalized:
        raise ValidationError(f'{label} is required.', detail_code=f'{label.lower()}_required')
    if len(normalized) > max_length:
        raise ValidationError(
            f'{label} must be {max_length} characters or fewer.',
            detail_code=f'{label.lower()}_too_long',
        )
    return normalized


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(value.strip().lower())
    except ValueError as exc:
        raise ValidationError(f'Unknown appointment status: {value!r}.', detail_code='invalid_status') from exc


class AppointmentService:
    """Entry point for proposing, transitioning, removing and listing appointments.

    Stores, identity provider, event publisher and clock are all injected; the
    service holds no module-level state of its own.
    """

    def __init__(
        self,
        appointments: AppointmentStore,
        availability: AvailabilityStore,
        identities: IdentityProvider,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = datetime.now,
        empty_availability_policy: EmptyAvailabilityPolicy = EmptyAvailabilityPolicy.UNCONSTRAINED,
        require_requester_approval: bool = True,
        default_list_limit: int = 0,
    ):
        self.appointments = appointments
        self.identities = identities
        self.publisher = publisher or default_publisher()
        self.clock = clock
        self.checker = AvailabilityChecker(availability, empty_availability_policy)
        self.resolver = AppointmentQueryResolver(appointments)
        self.require_requester_approval = require_requester_approval
        self.default_list_limit = default_list_limit

    def _actor(self, acting: Identity | str) -> Identity:
        if isinstance(acting, Identity):
            return acting

        identity = self.identities.resolve(acting)
        if identity is None:
            raise Forbidden('Unknown user.', detail_code='unknown_actor')
        return identity

    def _party(self, user_id: str, label: str) -> Identity:
        identity = self.identities.resolve(user_id)
        if identity is None:
            raise ValidationError(f'{label} not found.', detail_code=f'unknown_{label.lower()}')
        return identity

    def is_slot_available(self, owner_id: str, instant: datetime) -> bool:
        return self.checker.is_slot_available(owner_id, instant)

    def propose_appointment(
        self,
        owner_id: str,
        requester_id: str,
        title: str,
        description: str | None,
        scheduled_at: datetime,
        acting: Identity | str,
    ) -> AppointmentRecord:
        actor = self._actor(acting)
        title = clean_text(title, 'Title', config.MAX_TITLE_LENGTH, required=True)
        description = clean_text(description, 'Description', config.MAX_DESCRIPTION_LENGTH, required=False)

        if requester_id == owner_id:
            raise ValidationError(
                'The student and the teacher of an appointment must be different people.',
                detail_code='same_party',
            )

        authorize_creation(actor, requester_id, owner_id)

        owner = self._party(owner_id, 'Teacher')
        if owner.role != Role.TEACHER:
            raise ValidationError('Appointments can only be booked with a teacher.', detail_code='owner_not_teacher')

        requester = self._party(requester_id, 'Student')
        if requester.role != Role.STUDENT:
            raise ValidationError('Only students can request appointments.', detail_code='requester_not_student')
        if self.require_requester_approval and requester.approval_status != ApprovalStatus.APPROVED:
            raise Forbidden(
                'This student account has not been approved yet.',
                detail_code='requester_not_approved',
            )

        # Instants are the owner's wall-clock time.
        scheduled_at = scheduled_at.replace(tzinfo=None)
        if scheduled_at <= self.clock():
            raise ValidationError('Appointments must be scheduled in the future.', detail_code='scheduled_in_past')

        # Availability may have changed since the caller's own is_slot_available check.
        self.checker.require_available(owner_id, scheduled_at)

        appointment = self.appointments.create(
            AppointmentDraft(
                requester_id=requester.id,
                requester_name=requester.display_name,
                owner_id=owner.id,
                owner_name=owner.display_name,
                title=title,
                description=description,
                scheduled_at=scheduled_at,
            ),
            actor.id,
        )

        logger.info('Appointment created: %s (%s with %s)', appointment.id, requester.id, owner.id)
        self.publisher.publish(
            AppointmentCreated(appointment_id=appointment.id, actor_id=actor.id, occurred_at=appointment.created_at)
        )
        return appointment

    def get_appointment(self, appointment_id: str, acting: Identity | str) -> AppointmentRecord:
        actor = self._actor(acting)
        appointment = self.appointments.get(appointment_id)
        require_party_or_admin(actor, appointment)
        return appointment

    def change_status(
        self,
        appointment_id: str,
        new_status: str | AppointmentStatus,
        acting: Identity | str,
    ) -> AppointmentRecord:
        actor = self._actor(acting)
        target = parse_status(new_status)

        before, after, party = self.appointments.transition(appointment_id, target, actor)

        logger.info(
            'Appointment status updated: %s %s -> %s by %s (%s)',
            appointment_id, before.status.value, after.status.value, actor.id, party.value,
        )
        self.publisher.publish(
            AppointmentStatusChanged(
                appointment_id=appointment_id,
                actor_id=actor.id,
                occurred_at=after.updated_at or self.clock(),
                from_status=before.status,
                to_status=after.status,
            )
        )
        return after

    def change_status_with_retry(
        self,
        appointment_id: str,
        new_status: str | AppointmentStatus,
        acting: Identity | str,
        attempts: int = 3,
    ) -> AppointmentRecord:
        """Re-run the read-validate-write cycle while the conditional write conflicts.

        Each retry re-reads the record, so a transition made illegal by the
        winning writer surfaces as ``InvalidTransition`` rather than overwriting it.
        """
        if attempts < 1:
            raise ValueError('attempts must be at least 1')

        attempt = 1
        while True:
            try:
                return self.change_status(appointment_id, new_status, acting)
            except Conflict:
                if attempt >= attempts:
                    raise
                logger.info('Retrying status change on %s after conflict (attempt %d)', appointment_id, attempt)
                attempt += 1

    def remove_appointment(self, appointment_id: str, acting: Identity | str) -> None:
        actor = self._actor(acting)
        removed, party = self.appointments.delete(appointment_id, actor)

        logger.info('Appointment deleted: %s by %s (%s)', appointment_id, actor.id, party.value)
        self.publisher.publish(
            AppointmentRemoved(
                appointment_id=appointment_id,
                actor_id=actor.id,
                occurred_at=self.clock(),
                last_status=removed.status,
            )
        )

    def list_appointments(
        self,
        caller_id: str,
        caller_role: Role | str,
        status_filter: str | None = None,
        limit: int | None = None,
        search: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[AppointmentRecord]:
        try:
            role = Role(caller_role)
        except ValueError as exc:
            raise ValidationError(f'Unknown role: {caller_role!r}.', detail_code='invalid_role') from exc

        caller = Identity(id=caller_id, role=role)
        return self.resolver.resolve(
            caller,
            status=status_filter,
            limit=self.default_list_limit if limit is None else limit,
            search=search,
            cancel=cancel,
        )


def build_appointment_service(db: Session, publisher: EventPublisher | None = None) -> AppointmentService:
    return AppointmentService(
        appointments=SqlAppointmentStore(db),
        availability=SqlAvailabilityStore(db),
        identities=DirectoryIdentityProvider(db),
        publisher=publisher,
        empty_availability_policy=EmptyAvailabilityPolicy(config.EMPTY_AVAILABILITY_POLICY),
        require_requester_approval=config.REQUIRE_REQUESTER_APPROVAL,
        default_list_limit=config.DEFAULT_LIST_LIMIT,
    )
