import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from conftest import PENDING_STUDENT, STUDENT, TEACHER
from classbook.auth import jwt_handler
from classbook.auth.dependencies import get_current_identity
from classbook.core import config
from classbook.models.user import ApprovalStatus, Role, User
from classbook.routes.auth_routes import me
from classbook.schemas import Identity


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_carries_identity_claims() -> None:
    token = jwt_handler.create_access_token(PENDING_STUDENT, expires_minutes=5)

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == PENDING_STUDENT.id
    assert payload['role'] == 'student'
    assert payload['approval_status'] == 'pending'


def test_expired_token_is_rejected() -> None:
    token = jwt_handler.create_access_token(TEACHER, expires_minutes=-1)

    with pytest.raises(jwt.ExpiredSignatureError):
        jwt_handler.decode_access_token(token)


def test_current_identity_comes_from_directory(db) -> None:
    user = db.get(User, STUDENT.id)
    user.approval_status = ApprovalStatus.PENDING.value
    db.commit()
    token = jwt_handler.create_access_token(STUDENT)

    identity = get_current_identity(credentials=_credentials(token), db=db)

    assert identity.id == STUDENT.id
    assert identity.role == Role.STUDENT
    assert identity.approval_status == ApprovalStatus.PENDING


def test_tampered_token_returns_401(db) -> None:
    token = jwt.encode({'sub': STUDENT.id}, 'not-the-secret', algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_current_identity(credentials=_credentials(token), db=db)

    assert exception_info.value.status_code == 401


def test_token_for_unknown_user_returns_401(db) -> None:
    token = jwt_handler.create_access_token(Identity(id='ghost', role=Role.STUDENT))

    with pytest.raises(HTTPException) as exception_info:
        get_current_identity(credentials=_credentials(token), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'


def test_me_returns_identity_summary() -> None:
    assert me(current_identity=TEACHER) == {
        'id': 't1',
        'role': 'teacher',
        'approval_status': 'approved',
        'display_name': 'Ada Teacher',
    }
