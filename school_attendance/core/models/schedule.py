"""Weekly recurring lesson slot: one class, subject and teacher on a day/time."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String, Time, Uuid, case
from sqlalchemy.orm import relationship

from school_attendance.core.enums import DayOfWeek
from school_attendance.db.session import Base


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_schedule_time_order"),
        Index("ix_schedule_teacher_day", "teacher_id", "day_of_week", "is_active"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id = Column(Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(String(10), nullable=False)  # monday .. sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    room = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", back_populates="schedules", foreign_keys=[class_id])
    subject = relationship("Subject", back_populates="schedules")
    teacher = relationship("User", back_populates="teaching_schedules", foreign_keys=[teacher_id])


# ORDER BY weekday (monday first) instead of alphabetically
day_of_week_order = case(
    {day.value: day.order for day in DayOfWeek},
    value=Schedule.day_of_week,
    else_=7,
)
