"""Appointment model definitions."""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from classbook.database import Base


class AppointmentStatus(str, Enum):
    """Lifecycle status.

    pending -> approved -> completed
    pending -> cancelled
    approved -> cancelled
    """

    PENDING = 'pending'
    APPROVED = 'approved'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)


class Appointment(Base):
    """A proposed or confirmed meeting between a requester and an owner."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint('requester_id <> owner_id', name='ck_appointments_distinct_parties'),
    )

    id = Column(String, primary_key=True)
    requester_id = Column(String, ForeignKey("users.id"), nullable=False)
    requester_name = Column(String, nullable=False, default='')
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    owner_name = Column(String, nullable=False, default='')
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default='')
    scheduled_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value)
    created_at = Column(DateTime, nullable=False)
    created_by = Column(String, nullable=False)
    updated_at = Column(DateTime)
    updated_by = Column(String)
    # Bumped on every conditional write; see SqlAppointmentStore.transition.
    version = Column(Integer, nullable=False, default=1)
