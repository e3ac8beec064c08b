import os
import uuid
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from classbook.database import Base, create_listing_indexes  # noqa: E402
from classbook.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from classbook.models.availability import AvailabilitySlot  # noqa: E402
from classbook.models.user import ApprovalStatus, Role, User  # noqa: E402
from classbook.schemas import Identity  # noqa: E402
from classbook.services.appointment_service import AppointmentService  # noqa: E402
from classbook.services.appointment_store import SqlAppointmentStore  # noqa: E402
from classbook.services.availability_store import SqlAvailabilityStore  # noqa: E402
from classbook.services.events import RecordingPublisher  # noqa: E402
from classbook.services.identity import DirectoryIdentityProvider  # noqa: E402

# Monday 2026-01-05, 08:00.
NOW = datetime(2026, 1, 5, 8, 0)

TEACHER = Identity(id='t1', role=Role.TEACHER, display_name='Ada Teacher')
OTHER_TEACHER = Identity(id='t2', role=Role.TEACHER, display_name='Grace Teacher')
STUDENT = Identity(id='s1', role=Role.STUDENT, display_name='Sam Student')
OTHER_STUDENT = Identity(id='s2', role=Role.STUDENT, display_name='Kim Student')
PENDING_STUDENT = Identity(
    id='s3', role=Role.STUDENT, approval_status=ApprovalStatus.PENDING, display_name='New Student',
)
ADMIN = Identity(id='a1', role=Role.ADMIN, display_name='Office Admin')


def fixed_clock() -> datetime:
    return NOW


def _build_session(with_indexes: bool):
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=[User.__table__, AvailabilitySlot.__table__, Appointment.__table__])
    if with_indexes:
        create_listing_indexes(engine)

    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = testing_session_local()
    for identity in (TEACHER, OTHER_TEACHER, STUDENT, OTHER_STUDENT, PENDING_STUDENT, ADMIN):
        db.add(User(
            id=identity.id,
            email=f'{identity.id}@example.edu',
            display_name=identity.display_name,
            role=identity.role.value,
            approval_status=identity.approval_status.value,
        ))
    db.commit()
    return engine, db


@pytest.fixture
def db():
    engine, session = _build_session(with_indexes=True)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_without_indexes():
    engine, session = _build_session(with_indexes=False)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(db, publisher):
    return AppointmentService(
        appointments=SqlAppointmentStore(db, clock=fixed_clock),
        availability=SqlAvailabilityStore(db, clock=fixed_clock),
        identities=DirectoryIdentityProvider(db),
        publisher=publisher,
        clock=fixed_clock,
    )


def insert_appointment(
    db,
    *,
    scheduled_at: datetime,
    status: AppointmentStatus = AppointmentStatus.PENDING,
    requester: Identity = STUDENT,
    owner: Identity = TEACHER,
    title: str = 'Office hours',
    created_at: datetime = NOW,
) -> str:
    appointment_id = uuid.uuid4().hex
    db.add(Appointment(
        id=appointment_id,
        requester_id=requester.id,
        requester_name=requester.display_name,
        owner_id=owner.id,
        owner_name=owner.display_name,
        title=title,
        description='',
        scheduled_at=scheduled_at,
        status=status.value,
        created_at=created_at,
        created_by=requester.id,
        version=1,
    ))
    db.commit()
    return appointment_id
