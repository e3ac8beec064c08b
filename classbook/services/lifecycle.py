"""Appointment state machine and the rules for who may drive it.

Checks run in a fixed order so every caller sees the same error for the same
situation: the actor must be a party or an administrator (``Forbidden``), the
target must be reachable from the current status (``InvalidTransition``), and
finally the actor's side must be allowed to make that particular move
(``Forbidden``). Administrators skip the ownership checks but never the table.
"""

from enum import Enum

from classbook.core.errors import Forbidden, InvalidTransition
from classbook.models.appointment import AppointmentStatus
from classbook.schemas import AppointmentRecord, Identity


class Party(str, Enum):
    OWNER = 'owner'
    REQUESTER = 'requester'
    ADMIN = 'admin'


TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.APPROVED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.APPROVED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}

ALLOWED_PARTIES: dict[tuple[AppointmentStatus, AppointmentStatus], frozenset[Party]] = {
    (AppointmentStatus.PENDING, AppointmentStatus.APPROVED): frozenset({Party.OWNER}),
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED): frozenset({Party.OWNER, Party.REQUESTER}),
    (AppointmentStatus.APPROVED, AppointmentStatus.CANCELLED): frozenset({Party.OWNER, Party.REQUESTER}),
    (AppointmentStatus.APPROVED, AppointmentStatus.COMPLETED): frozenset({Party.OWNER}),
}

# Progress rank used to check that a status trajectory never moves backwards.
STATUS_RANK = {
    AppointmentStatus.PENDING: 0,
    AppointmentStatus.APPROVED: 1,
    AppointmentStatus.CANCELLED: 1,
    AppointmentStatus.COMPLETED: 2,
}

_ACTION_NAMES = {
    AppointmentStatus.APPROVED: 'approve',
    AppointmentStatus.CANCELLED: 'cancel',
    AppointmentStatus.COMPLETED: 'complete',
}


def parties_of(actor: Identity, appointment: AppointmentRecord) -> set[Party]:
    parties: set[Party] = set()
    if actor.id == appointment.owner_id:
        parties.add(Party.OWNER)
    if actor.id == appointment.requester_id:
        parties.add(Party.REQUESTER)
    if actor.is_admin:
        parties.add(Party.ADMIN)
    return parties


def require_party_or_admin(actor: Identity, appointment: AppointmentRecord) -> set[Party]:
    parties = parties_of(actor, appointment)
    if not parties:
        raise Forbidden(
            'Only the teacher, the student or an administrator can act on this appointment.',
            detail_code='not_a_party',
        )
    return parties


def validate_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if target not in TRANSITIONS[current]:
        if current.is_terminal:
            reason = f'This appointment is already {current.value} and can no longer change.'
        elif current == target:
            reason = f'This appointment is already {current.value}.'
        else:
            reason = None
        raise InvalidTransition(current.value, target.value, reason)


def authorize_transition(
    actor: Identity,
    appointment: AppointmentRecord,
    target: AppointmentStatus,
) -> Party:
    """Return the capacity in which ``actor`` performs the move, or raise."""
    parties = require_party_or_admin(actor, appointment)
    validate_transition(appointment.status, target)

    allowed = ALLOWED_PARTIES[(appointment.status, target)]
    for party in (Party.OWNER, Party.REQUESTER):
        if party in parties and party in allowed:
            return party
    if Party.ADMIN in parties:
        return Party.ADMIN

    raise Forbidden(
        f'Only the teacher can {_ACTION_NAMES[target]} this appointment.',
        detail_code=f'{_ACTION_NAMES[target]}_requires_owner',
    )


def authorize_removal(actor: Identity, appointment: AppointmentRecord) -> Party:
    parties = require_party_or_admin(actor, appointment)
    return next(party for party in (Party.OWNER, Party.REQUESTER, Party.ADMIN) if party in parties)


def authorize_creation(actor: Identity, requester_id: str, owner_id: str) -> Party:
    if actor.id == requester_id:
        return Party.REQUESTER
    if actor.id == owner_id:
        return Party.OWNER
    if actor.is_admin:
        return Party.ADMIN
    raise Forbidden(
        'Appointments can only be proposed by the student or by the teacher on their behalf.',
        detail_code='not_a_party',
    )


def is_forward(previous: AppointmentStatus, following: AppointmentStatus) -> bool:
    return STATUS_RANK[following] > STATUS_RANK[previous]
