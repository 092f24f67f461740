import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text, Uuid
from sqlalchemy.orm import relationship

from school_attendance.db.session import Base


class User(Base):
    """Account with exactly one role: admin, teacher or student."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    role = Column(String(20), nullable=False, default="student", index=True)
    # School-issued identifier; meaningful for students only
    student_number = Column(String(50), nullable=True, unique=True, index=True)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    enrollments = relationship(
        "ClassEnrollment",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    teaching_schedules = relationship(
        "Schedule",
        back_populates="teacher",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
