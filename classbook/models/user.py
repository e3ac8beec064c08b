"""User directory model definitions."""

from enum import Enum

from sqlalchemy import Column, String
from classbook.database import Base


class Role(str, Enum):
    STUDENT = 'student'
    TEACHER = 'teacher'
    ADMIN = 'admin'


class ApprovalStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class User(Base):
    """A directory entry for a participant; credentials live with the identity provider."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    display_name = Column(String, nullable=False, default='')
    role = Column(String, nullable=False)  # student/teacher/admin
    approval_status = Column(String, nullable=False, default=ApprovalStatus.APPROVED.value)
