"""Availability model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, String, Time
from classbook.database import Base


WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class AvailabilitySlot(Base):
    """A recurring (weekly) or one-off (dated) window in which an owner accepts proposals."""
    __tablename__ = "availability_slots"
    __table_args__ = (
        CheckConstraint(
            '(is_recurring AND day_of_week IS NOT NULL AND slot_date IS NULL)'
            ' OR (NOT is_recurring AND slot_date IS NOT NULL AND day_of_week IS NULL)',
            name='ck_availability_slots_shape',
        ),
        CheckConstraint('start_time < end_time', name='ck_availability_slots_range'),
    )

    id = Column(String, primary_key=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    is_recurring = Column(Boolean, nullable=False)
    day_of_week = Column(String)
    slot_date = Column(Date)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime)
