import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from school_attendance.db.session import Base


class Attendance(Base):
    """Attendance ledger: at most one row per student per schedule per date."""

    __tablename__ = "attendance"
    __table_args__ = (
        # Authoritative guard for the (student, lesson, day) upsert key
        UniqueConstraint("student_id", "schedule_id", "date", name="uq_attendance_student_schedule_date"),
        Index("ix_attendance_student_date", "student_id", "date"),
        Index("ix_attendance_schedule_date", "schedule_id", "date"),
        Index("ix_attendance_date_status", "date", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    schedule_id = Column(Uuid, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="absent")  # present, absent, late, excused
    notes = Column(Text, nullable=True)
    recorded_by = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("User", foreign_keys=[student_id])
    schedule = relationship("Schedule", foreign_keys=[schedule_id])
    recorder = relationship("User", foreign_keys=[recorded_by])
