import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classbook.core.errors import NotFound, Unavailable
from classbook.models.user import ApprovalStatus, Role, User
from classbook.schemas import Identity

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def current_identity(self) -> Identity: ...

    def resolve(self, user_id: str) -> Identity | None: ...


def identity_from_user(user: User) -> Identity:
    return Identity(
        id=user.id,
        role=Role(user.role),
        approval_status=ApprovalStatus(user.approval_status or ApprovalStatus.APPROVED.value),
        display_name=user.display_name or user.email or '',
    )


class DirectoryIdentityProvider:
    """Resolves participants from the users table.

    ``current`` is the already authenticated caller, if there is one.
    """

    def __init__(self, db: Session, current: Identity | None = None):
        self._db = db
        self._current = current

    def current_identity(self) -> Identity:
        if self._current is None:
            raise NotFound('No authenticated identity.', detail_code='no_identity')
        return self._current

    def resolve(self, user_id: str) -> Identity | None:
        try:
            user = self._db.query(User).filter(User.id == user_id).first()
        except SQLAlchemyError as exc:
            logger.exception('User lookup failed for %s', user_id)
            raise Unavailable() from exc

        if user is None:
            return None
        return identity_from_user(user)


class StaticIdentityProvider:
    """In-memory directory; used by tooling and tests."""

    def __init__(self, identities: list[Identity] | None = None, current: Identity | None = None):
        self._identities = {identity.id: identity for identity in identities or []}
        self._current = current
        if current is not None:
            self._identities.setdefault(current.id, current)

    def current_identity(self) -> Identity:
        if self._current is None:
            raise NotFound('No authenticated identity.', detail_code='no_identity')
        return self._current

    def resolve(self, user_id: str) -> Identity | None:
        return self._identities.get(user_id)
