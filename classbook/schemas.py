"""Read-only projections handed out by the stores.

The stores own the ORM rows; everything outside them works with these frozen
copies, so a projection can never be written back by accident.
"""

from datetime import date, datetime, time

from pydantic import BaseModel

from classbook.models.appointment import AppointmentStatus
from classbook.models.user import ApprovalStatus, Role


class Identity(BaseModel):
    id: str
    role: Role
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED
    display_name: str = ''

    class Config:
        frozen = True

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class AppointmentRecord(BaseModel):
    id: str
    requester_id: str
    requester_name: str
    owner_id: str
    owner_name: str
    title: str
    description: str
    scheduled_at: datetime
    status: AppointmentStatus
    created_at: datetime
    created_by: str
    updated_at: datetime | None = None
    updated_by: str | None = None
    version: int

    class Config:
        from_attributes = True
        frozen = True


class AvailabilitySlotRecord(BaseModel):
    id: str
    owner_id: str
    is_recurring: bool
    day_of_week: str | None = None
    slot_date: date | None = None
    start_time: time
    end_time: time

    class Config:
        from_attributes = True
        frozen = True
